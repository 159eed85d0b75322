"""
NNS and SNS governance operations.

Wraps the proposals and queries the validator needs: publishing WASMs to
SNS-W, proposing canister upgrades, and reading back what a canister is
actually running. Every call goes through CommandRunner, except the NNS
endpoint pre-flight which uses httpx directly.
"""

import json
import re
from typing import Dict, Optional, Union

import httpx
from loguru import logger

from ..config import ValidatorConfig
from ..core.constants import (
    GIT_COMMIT_METADATA,
    HTTP_TIMEOUT,
    NNS_GOVERNANCE_CANISTER_ID,
    SNS_WASM_CANISTER_ID,
)
from ..core.dataclasses import ArtifactReference, DeploymentInstance
from ..core.enums import CanisterType
from ..core.exceptions import TransientNetworkError
from .command_runner import CommandRunner

MODULE_HASH_PATTERN = re.compile(r"Module hash:\s*(?:0x)?([0-9a-fA-F]{64})")
PRINCIPAL_PATTERN = re.compile(r"Principal id:\s*(\S+)")

# get_latest_sns_version_pretty has no entry for index
SNS_W_VERSION_NAMES = {
    CanisterType.ROOT: "Root",
    CanisterType.GOVERNANCE: "Governance",
    CanisterType.LEDGER: "Ledger",
    CanisterType.SWAP: "Swap",
    CanisterType.ARCHIVE: "Ledger Archive",
}


def candid_blob(hex_digest: str) -> str:
    """Encode a hex digest as a Candid blob literal."""
    escaped = "".join(f"\\{byte:02x}" for byte in bytes.fromhex(hex_digest))
    return f'blob "{escaped}"'


def _as_hex(value) -> str:
    # idl2json renders blobs either as a hex string or as a list of bytes
    if isinstance(value, str):
        return value.lower()
    return bytes(value).hex()


class GovernanceClient:
    """
    Issues NNS/SNS proposals and queries on behalf of the validator.

    NNS proposals are made with ic-admin using the configured neuron, SNS
    proposals with sns-quill using the deployment's developer neuron. The
    test environments these run against adopt proposals immediately.
    """

    def __init__(
        self,
        config: ValidatorConfig,
        runner: CommandRunner,
        http_client: Optional[httpx.Client] = None,
    ):
        self.config = config
        self.runner = runner
        self.http_client = http_client or httpx.Client(timeout=HTTP_TIMEOUT)

    # =========================================================================
    # PRE-FLIGHT
    # =========================================================================

    def check_endpoint(self) -> None:
        """
        Confirm the NNS replica answers status requests.

        Raises:
            TransientNetworkError: If the endpoint cannot be reached
        """
        url = f"{self.config.nns_url.rstrip('/')}/api/v2/status"
        try:
            response = self.http_client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransientNetworkError(
                f"NNS endpoint {url} returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"Cannot reach NNS endpoint {url}: {e}") from e
        logger.info(f"NNS endpoint {self.config.nns_url} is reachable")

    def principal(self) -> str:
        """Principal of the configured PEM identity."""
        output = self.runner.run(
            [self.config.sns_quill, "--pem-file", self.config.pem, "public-ids"]
        )
        match = PRINCIPAL_PATTERN.search(output)
        if not match:
            raise TransientNetworkError(
                f"Could not find a principal in sns-quill output: {output.strip()}"
            )
        return match.group(1)

    def sns_cli_version(self) -> str:
        """Version string the configured sns CLI reports."""
        return self.runner.run([self.config.sns_cli, "--version"]).strip()

    # =========================================================================
    # NNS PROPOSALS
    # =========================================================================

    def _ic_admin(self, *args: str) -> str:
        return self.runner.run(
            [
                self.config.ic_admin,
                "--nns-url",
                self.config.nns_url,
                "--secret-key-pem",
                self.config.pem,
                *args,
            ]
        )

    def wasm_registered(self, sha256: str) -> bool:
        """Whether SNS-W already stores a WASM with this hash."""
        candid = self._query_json(
            SNS_WASM_CANISTER_ID,
            "get_wasm",
            f"(record {{ hash = {candid_blob(sha256)} }})",
        )
        return bool(candid.get("wasm"))

    def latest_sns_version(self) -> Dict[str, str]:
        """
        Hashes of the SNS version new SNSes are deployed with, keyed by
        SNS-W's display name for each canister type.
        """
        candid = self._query_json(
            SNS_WASM_CANISTER_ID, "get_latest_sns_version_pretty", "()", expect=list
        )
        latest = {}
        for entry in candid:
            # idl2json renders tuple records either as lists or as {"0":, "1":}
            if isinstance(entry, dict):
                entry = (entry.get("0"), entry.get("1"))
            try:
                name, wasm_hash = entry
                latest[name] = wasm_hash.lower()
            except (TypeError, ValueError, AttributeError) as e:
                raise TransientNetworkError(
                    f"Unexpected SNS-W version entry {entry!r}"
                ) from e
        return latest

    def latest_hash(self, canister_type: CanisterType) -> Optional[str]:
        """
        Hash SNS-W's latest version holds for a canister type, or None if
        SNS-W does not report that type.
        """
        name = SNS_W_VERSION_NAMES.get(canister_type)
        if name is None:
            return None
        return self.latest_sns_version().get(name)

    def publish_settled(self, artifact: ArtifactReference) -> bool:
        """Whether a published artifact is now what SNS-W upgrades to."""
        latest = self.latest_hash(artifact.canister_type)
        if latest is None:
            return self.wasm_registered(artifact.sha256)
        return latest == artifact.sha256

    def publish_wasm(self, artifact: ArtifactReference) -> bool:
        """
        Add an artifact to SNS-W unless SNS-W's latest version already
        holds it.

        A WASM that is stored but not latest is added again: adding moves
        SNS-W's latest version forward, which is what gives an SNS a next
        version to upgrade to.

        Returns:
            True if a proposal was made, False if nothing needed to change
        """
        if self.latest_hash(artifact.canister_type) == artifact.sha256:
            logger.info(
                f"SNS-W latest version already has {artifact.canister_type.value} "
                f"WASM {artifact.sha256[:12]}, skipping upload"
            )
            return False

        self._ic_admin(
            "propose-to-add-wasm-to-sns-wasm",
            "--wasm-module-path",
            str(artifact.path),
            "--wasm-module-sha256",
            artifact.sha256,
            "--canister-type",
            artifact.canister_type.value,
            "--summary",
            f"Add {artifact.variant.value} {artifact.canister_type.value} WASM "
            f"for {artifact.version or self.config.target_version} to SNS-W",
            "--proposer",
            self.config.neuron_id,
        )
        return True

    def upgrade_nns_canister(
        self, canister_id: str, artifact: ArtifactReference, summary: str
    ) -> None:
        """Propose an NNS-root controlled canister upgrade."""
        self._ic_admin(
            "propose-to-change-nns-canister",
            "--mode",
            "upgrade",
            "--canister-id",
            canister_id,
            "--wasm-module-path",
            str(artifact.path),
            "--wasm-module-sha256",
            artifact.sha256,
            "--summary",
            summary,
            "--proposer",
            self.config.neuron_id,
        )

    def upgrade_nns_governance(self, artifact: ArtifactReference) -> None:
        """Upgrade NNS governance so SNS-W accepts test-version SNS upgrades."""
        logger.info(f"Upgrading NNS governance to {self.config.target_version}")
        self.upgrade_nns_canister(
            NNS_GOVERNANCE_CANISTER_ID,
            artifact,
            f"Upgrade NNS governance to {self.config.target_version} for testing",
        )

    # =========================================================================
    # SNS PROPOSALS
    # =========================================================================

    def _sns_quill(self, deployment: DeploymentInstance, *args: str, input=None) -> str:
        return self.runner.run(
            [
                self.config.sns_quill,
                "--canister-ids-file",
                str(deployment.workdir / "sns_canister_ids.json"),
                "--pem-file",
                self.config.pem,
                *args,
            ],
            input=input,
        )

    def propose_upgrade(
        self,
        deployment: DeploymentInstance,
        canister_type: CanisterType,
        artifact: ArtifactReference,
    ) -> None:
        """
        Ask the deployment's governing system to move a canister to the
        newest WASM SNS-W holds for its type.

        Swap is controlled by NNS root, so it is upgraded with an NNS
        proposal naming the deployment's swap canister. Everything else is
        upgraded by an SNS governance UpgradeSnsToNextVersion proposal.
        """
        version = self.config.target_version
        if canister_type == CanisterType.SWAP:
            self.upgrade_nns_canister(
                deployment.canister_id(CanisterType.SWAP),
                artifact,
                f"Upgrade swap of {deployment.name} to {version}",
            )
            return

        proposal = (
            "(record { "
            f'title = "Upgrade {canister_type.value} to {version}"; '
            'url = ""; '
            f'summary = "Upgrade {canister_type.value} of {deployment.name}"; '
            "action = opt variant { UpgradeSnsToNextVersion = record {} } })"
        )
        signed = self._sns_quill(
            deployment,
            "make-proposal",
            deployment.neuron_id,
            "--proposal",
            proposal,
        )
        self._sns_quill(deployment, "send", "--yes", "-", input=signed)

    def developer_neuron_id(
        self, governance_canister_id: str, principal: str
    ) -> str:
        """First SNS neuron controlled by the given principal."""
        candid = self._query_json(
            governance_canister_id,
            "list_neurons",
            "(record { "
            f'of_principal = opt principal "{principal}"; '
            "limit = 1 : nat32; start_page_at = null })",
        )
        neurons = candid.get("neurons") or []
        if not neurons:
            raise TransientNetworkError(
                f"No SNS neurons controlled by {principal} yet"
            )
        neuron_id = neurons[0]["id"]
        if isinstance(neuron_id, list):
            neuron_id = neuron_id[0]
        return _as_hex(neuron_id["id"])

    # =========================================================================
    # CANISTER QUERIES
    # =========================================================================

    def _dfx_canister(self, *args: str) -> str:
        return self.runner.run(
            [self.config.dfx, "canister", "--network", self.config.nns_url, *args]
        )

    def _query_json(
        self, canister_id: str, method: str, argument: str, expect: type = dict
    ) -> Union[dict, list]:
        raw = self._dfx_canister("call", "--query", canister_id, method, argument)
        converted = self.runner.run([self.config.idl2json], input=raw)
        try:
            candid = json.loads(converted)
        except json.JSONDecodeError as e:
            raise TransientNetworkError(
                f"Unparseable {method} response from {canister_id}: {e}"
            ) from e
        if not isinstance(candid, expect):
            raise TransientNetworkError(
                f"Unexpected {method} response from {canister_id}: {converted.strip()}"
            )
        return candid

    def canister_version(self, canister_id: str) -> str:
        """git commit the canister reports in its metadata."""
        return self._dfx_canister(
            "metadata", canister_id, GIT_COMMIT_METADATA
        ).strip()

    def module_hash(self, canister_id: str) -> Optional[str]:
        """sha256 of the module installed on the canister, if any."""
        output = self._dfx_canister("info", canister_id)
        match = MODULE_HASH_PATTERN.search(output)
        return match.group(1).lower() if match else None
