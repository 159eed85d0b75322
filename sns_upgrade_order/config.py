"""
Configuration Module
Builds the single immutable configuration value for a validator run.

Environment bindings (all required):
    NNS_URL           NNS replica endpoint the SNS deployments live behind
    NEURON_ID         NNS neuron used to make and adopt proposals
    WALLET_CANISTER   cycles wallet that pays for SNS deployments
    PEM               identity used to sign NNS and SNS messages
    IC_ADMIN          path to the ic-admin binary
    SNS_QUILL         path to the sns-quill binary
    IDL2JSON          path to the idl2json converter

Optional bindings:
    SNS_CLI, DFX, SNS_INIT_CONFIG, ARTIFACT_BASE_URL, ARTIFACT_CACHE_DIR
    BASELINE_VERSION  version every test SNS starts from (default: the git
                      version NNS governance runs before it is upgraded)
"""

import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .core.constants import (
    COMMAND_TIMEOUT,
    DEFAULT_ARTIFACT_BASE_URL,
    POLLING_INTERVAL,
    STEP_DEADLINE,
)
from .core.exceptions import ConfigurationError

REQUIRED_ENV = {
    "NNS_URL": "nns_url",
    "NEURON_ID": "neuron_id",
    "WALLET_CANISTER": "wallet_canister",
    "PEM": "pem",
    "IC_ADMIN": "ic_admin",
    "SNS_QUILL": "sns_quill",
    "IDL2JSON": "idl2json",
}

OPTIONAL_ENV = {
    "SNS_CLI": "sns_cli",
    "DFX": "dfx",
    "SNS_INIT_CONFIG": "sns_init_config",
    "ARTIFACT_BASE_URL": "artifact_base_url",
    "ARTIFACT_CACHE_DIR": "artifact_cache_dir",
    "BASELINE_VERSION": "baseline_version",
}

DEFAULT_SNS_INIT_CONFIG = Path(__file__).parent / "data" / "sns_init_test.yaml"


class ValidatorConfig(BaseModel):
    """Immutable settings shared by every component of one run."""

    model_config = ConfigDict(frozen=True)

    target_version: str = Field(min_length=1)

    # --- NNS bindings ---
    nns_url: str = Field(min_length=1)
    neuron_id: str = Field(min_length=1)
    wallet_canister: str = Field(min_length=1)
    pem: Path

    # --- External binaries ---
    ic_admin: str = Field(min_length=1)
    sns_quill: str = Field(min_length=1)
    idl2json: str = Field(min_length=1)
    sns_cli: str = "sns"
    dfx: str = "dfx"

    # --- Artifacts and deployments ---
    sns_init_config: Path = DEFAULT_SNS_INIT_CONFIG
    artifact_base_url: str = DEFAULT_ARTIFACT_BASE_URL
    artifact_cache_dir: Optional[Path] = None
    baseline_version: Optional[str] = None

    # --- Timing ---
    poll_interval: float = Field(default=POLLING_INTERVAL, gt=0)
    step_deadline: float = Field(default=STEP_DEADLINE, gt=0)
    command_timeout: float = Field(default=COMMAND_TIMEOUT, gt=0)

    # --- Run behaviour ---
    log_file: Optional[Path] = None
    skip_nns_upgrade: bool = False
    fail_on_aborted: bool = False

    @model_validator(mode="after")
    def _check_consistency(self) -> "ValidatorConfig":
        if self.step_deadline < self.poll_interval:
            raise ValueError(
                f"step_deadline ({self.step_deadline}s) must be at least "
                f"poll_interval ({self.poll_interval}s)"
            )
        if self.baseline_version == self.target_version:
            raise ValueError(
                f"baseline_version and target_version are both "
                f"{self.target_version}; there would be nothing to upgrade"
            )
        return self

    @classmethod
    def from_env(
        cls,
        target_version: str,
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> "ValidatorConfig":
        """
        Build the configuration from environment bindings plus CLI overrides.

        Args:
            target_version: Version every ordering upgrades to
            environ: Environment mapping (default: os.environ)
            **overrides: Values from the command line; None entries are ignored

        Returns:
            Frozen ValidatorConfig

        Raises:
            ConfigurationError: If required bindings are missing or invalid
        """
        environ = os.environ if environ is None else environ

        missing = [name for name in REQUIRED_ENV if not environ.get(name)]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                "Source output_vars_nns_state_deployment.sh from your working "
                "directory to get the needed variables in your shell",
            )

        values = {field: environ[name] for name, field in REQUIRED_ENV.items()}
        values.update(
            {
                field: environ[name]
                for name, field in OPTIONAL_ENV.items()
                if environ.get(name)
            }
        )
        values.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(target_version=target_version, **values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
