"""
Per-ordering SNS provisioning.

Every ordering gets its own freshly deployed SNS so that no ordering can
observe canister state left behind by another.
"""

import json
import shutil
import tempfile
import uuid
from pathlib import Path

import yaml
from loguru import logger

from ..config import ValidatorConfig
from ..core.dataclasses import DeploymentInstance, Ordering, format_ordering
from ..core.enums import CanisterType
from ..core.exceptions import ProvisioningError, TransientNetworkError
from .command_runner import CommandRunner
from .governance_client import GovernanceClient

CANISTER_IDS_FILE = "sns_canister_ids.json"
DEPLOYED_TYPES = (
    CanisterType.ROOT,
    CanisterType.GOVERNANCE,
    CanisterType.LEDGER,
    CanisterType.SWAP,
    CanisterType.INDEX,
)


class SnsProvisioner:
    """Deploys throwaway SNSes from the configured init template."""

    def __init__(
        self,
        config: ValidatorConfig,
        runner: CommandRunner,
        governance: GovernanceClient,
    ):
        self.config = config
        self.runner = runner
        self.governance = governance
        self._principal = None

    def _load_template(self) -> dict:
        try:
            with open(self.config.sns_init_config, "r") as f:
                template = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ProvisioningError(
                f"Cannot load SNS init config {self.config.sns_init_config}: {e}"
            ) from e
        if not isinstance(template, dict):
            raise ProvisioningError(
                f"SNS init config {self.config.sns_init_config} is not a mapping"
            )
        return template

    def render_init_config(self, name: str, principal: str, workdir: Path) -> Path:
        """Write an init config for one deployment, owned by our identity."""
        init_config = self._load_template()
        init_config["name"] = name
        init_config["fallback_controller_principal_ids"] = [principal]

        distribution = init_config.get("initial_token_distribution", {})
        for dist in distribution.values():
            developer = (dist or {}).get("developer_distribution", {})
            for neuron in developer.get("developer_neurons", []):
                neuron["controller"] = principal

        path = workdir / "sns_init.yaml"
        with open(path, "w") as f:
            yaml.safe_dump(init_config, f, sort_keys=False)
        return path

    def provision(self, ordering: Ordering) -> DeploymentInstance:
        """
        Deploy a new SNS for one ordering.

        Raises:
            ProvisioningError: If deployment fails for any reason
        """
        name = f"upgrade-test-{uuid.uuid4().hex[:8]}"
        workdir = Path(tempfile.mkdtemp(prefix=f"{name}-"))
        logger.info(f"Deploying SNS {name} for '{format_ordering(ordering)}'")

        try:
            if self._principal is None:
                self._principal = self.governance.principal()
            init_path = self.render_init_config(name, self._principal, workdir)

            self.runner.run(
                [
                    self.config.sns_cli,
                    "deploy",
                    "--network",
                    self.config.nns_url,
                    "--init-config-file",
                    str(init_path),
                    "--wallet-canister-override",
                    self.config.wallet_canister,
                    "--save-to",
                    str(workdir / CANISTER_IDS_FILE),
                ],
                cwd=workdir,
            )

            with open(workdir / CANISTER_IDS_FILE, "r") as f:
                raw_ids = json.load(f)
            canister_ids = {
                canister_type: raw_ids[f"{canister_type.value}_canister_id"]
                for canister_type in DEPLOYED_TYPES
            }
            neuron_id = self.governance.developer_neuron_id(
                canister_ids[CanisterType.GOVERNANCE], self._principal
            )
        except (
            ProvisioningError,
            TransientNetworkError,
            OSError,
            KeyError,
            json.JSONDecodeError,
        ) as e:
            shutil.rmtree(workdir, ignore_errors=True)
            if isinstance(e, ProvisioningError):
                raise
            raise ProvisioningError(f"Failed to deploy SNS {name}: {e}") from e

        deployment = DeploymentInstance(name, canister_ids, neuron_id, workdir)
        logger.info(
            f"SNS {name} deployed (governance "
            f"{canister_ids[CanisterType.GOVERNANCE]})"
        )
        return deployment

    def discard(self, deployment: DeploymentInstance) -> None:
        """Forget a deployment; its canisters are never reused."""
        shutil.rmtree(deployment.workdir, ignore_errors=True)
        logger.debug(f"Discarded SNS {deployment.name}")
