"""
Shared fixtures and fakes for the upgrade-order validator tests.

Governance (with SNS-W), provisioning and time are faked; the artifact
store is the real one, served over httpx.MockTransport.
"""

import gzip
from pathlib import Path

import httpx
import pytest

from sns_upgrade_order.config import ValidatorConfig
from sns_upgrade_order.connectivity.artifact_store import ArtifactStore
from sns_upgrade_order.core.dataclasses import (
    DeploymentInstance,
    format_ordering,
    sha256_hex,
)
from sns_upgrade_order.core.enums import CanisterType
from sns_upgrade_order.core.exceptions import ProvisioningError, TransientNetworkError
from sns_upgrade_order.progress.result_log import ResultLog
from sns_upgrade_order.sweep import UpgradeSweep
from sns_upgrade_order.upgrade.baseline import SnsWasmBaseline
from sns_upgrade_order.upgrade.integrity_checker import ArtifactIntegrityChecker
from sns_upgrade_order.upgrade.polling import Poller
from sns_upgrade_order.upgrade.upgrade_driver import UpgradeDriver

TARGET_VERSION = "1.0.0"
BASELINE_VERSION = "0.9.0"
NNS_GOVERNANCE = "rrkah-fqaaa-aaaaa-aaaaq-cai"
DEPLOYED = [t for t in CanisterType if t != CanisterType.ARCHIVE]


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self):
        self.now = 1000.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def wasm_bytes(canister_type: CanisterType, version: str = TARGET_VERSION) -> bytes:
    return b"\x00asm\x01\x00\x00\x00" + f"{canister_type.value}@{version}".encode() * 16


def gzipped(content: bytes) -> bytes:
    return gzip.compress(content, mtime=0)


class ArtifactServer:
    """Serves gzipped WASMs; types in `plain` are served without gzip."""

    def __init__(self):
        self.plain = set()
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.path)
        parts = request.url.path.split("/")
        version, name = parts[-3], parts[-1][: -len(".wasm.gz")]
        for canister_type in CanisterType:
            if canister_type.wasm_name == name:
                content = wasm_bytes(canister_type, version)
                if canister_type not in self.plain:
                    content = gzipped(content)
                return httpx.Response(200, content=content)
        if name == "governance-canister_test":
            return httpx.Response(200, content=gzipped(b"\x00asm nns gov"))
        return httpx.Response(404)


def _key(version):
    return tuple(sorted((t.value, sha) for t, sha in version.items()))


class FakeGovernance:
    """
    In-memory NNS with an SNS-W upgrade path.

    New SNSes are deployed with SNS-W's latest version and every WASM added
    to SNS-W becomes part of a new latest version, as on a real NNS. An SNS
    upgrade moves the SNS one version along the path; the changed canister
    takes the new module after `polls_to_converge` reads of its state.
    Canister types in `never_converge` ignore upgrade proposals.
    """

    def __init__(self, target_version: str = TARGET_VERSION):
        self.target_version = target_version
        self.calls = []
        self.latest = {
            t: sha256_hex(gzipped(wasm_bytes(t, BASELINE_VERSION))) for t in DEPLOYED
        }
        self.versions_by_sha = {sha: BASELINE_VERSION for sha in self.latest.values()}
        self.upgrade_path = {}
        self.added = []
        self.installed = {}
        self.sns_versions = {}
        self.initial_versions = {}
        self.pending = {}
        self.upgrades = []
        self.noop_proposals = []
        self.polls_to_converge = 1
        self.never_converge = set()
        self.transient_version_errors = 0
        self.sns_cli_output = f"sns {BASELINE_VERSION}"

    # --- SNS-W ---

    def deploy(self, deployment):
        version = dict(self.latest)
        self.sns_versions[deployment.name] = version
        self.initial_versions[deployment.name] = {
            t: self.versions_by_sha[sha] for t, sha in version.items()
        }
        for canister_type, canister_id in deployment.canister_ids.items():
            self.installed[canister_id] = version[canister_type]

    def publish_wasm(self, artifact):
        self.calls.append(
            ("publish", artifact.canister_type.value, artifact.variant.value)
        )
        if self.latest.get(artifact.canister_type) == artifact.sha256:
            return False
        self.versions_by_sha[artifact.sha256] = artifact.version
        new_latest = dict(self.latest)
        new_latest[artifact.canister_type] = artifact.sha256
        self.upgrade_path[_key(self.latest)] = new_latest
        self.latest = new_latest
        self.added.append(artifact.sha256)
        return True

    def publish_settled(self, artifact):
        return self.latest.get(artifact.canister_type) == artifact.sha256

    # --- proposals ---

    def propose_upgrade(self, deployment, canister_type, artifact):
        self.calls.append(
            ("propose", canister_type.value, artifact.variant.value, deployment.name)
        )
        if canister_type in self.never_converge:
            return
        current = self.sns_versions[deployment.name]
        next_version = self.upgrade_path.get(_key(current))
        if next_version is None:
            self.noop_proposals.append((deployment.name, canister_type.value))
            return
        self.sns_versions[deployment.name] = next_version
        self.upgrades.append((deployment.name, canister_type.value))
        for changed, sha in next_version.items():
            if current[changed] != sha and changed in deployment.canister_ids:
                self.pending[deployment.canister_id(changed)] = [
                    self.polls_to_converge,
                    sha,
                ]

    def upgrade_nns_governance(self, artifact):
        self.calls.append(("upgrade_nns_governance", artifact.sha256))
        self.versions_by_sha[artifact.sha256] = artifact.version
        self.pending[NNS_GOVERNANCE] = [0, artifact.sha256]

    # --- queries ---

    def check_endpoint(self):
        self.calls.append(("check_endpoint",))

    def sns_cli_version(self):
        return self.sns_cli_output

    def _tick(self, canister_id):
        pending = self.pending.get(canister_id)
        if pending is None:
            return
        if pending[0] > 0:
            pending[0] -= 1
            return
        self.installed[canister_id] = self.pending.pop(canister_id)[1]

    def version_of(self, canister_id):
        sha = self.installed.get(canister_id)
        return self.versions_by_sha[sha] if sha else BASELINE_VERSION

    def canister_version(self, canister_id):
        self.calls.append(("version", canister_id))
        if self.transient_version_errors:
            self.transient_version_errors -= 1
            raise TransientNetworkError("connection reset by peer")
        self._tick(canister_id)
        return self.version_of(canister_id)

    def module_hash(self, canister_id):
        self.calls.append(("module_hash", canister_id))
        self._tick(canister_id)
        return self.installed.get(canister_id)

    def call_names(self, name):
        return [call for call in self.calls if call[0] == name]


class FakeProvisioner:
    """Hands out a brand new deployment per ordering, deployed from SNS-W."""

    def __init__(self, tmp_path: Path, governance: FakeGovernance):
        self.tmp_path = tmp_path
        self.tmp_path.mkdir(parents=True, exist_ok=True)
        self.governance = governance
        self.provisioned = []
        self.discarded = []
        self.fail_orderings = set()

    def provision(self, ordering):
        if ordering in self.fail_orderings:
            raise ProvisioningError(f"sns deploy failed for {format_ordering(ordering)}")
        name = f"sns-{len(self.provisioned)}"
        workdir = self.tmp_path / name
        workdir.mkdir()
        deployment = DeploymentInstance(
            name, {t: f"{name}-{t.value}" for t in DEPLOYED}, "0", workdir
        )
        self.governance.deploy(deployment)
        self.provisioned.append(deployment)
        return deployment

    def discard(self, deployment):
        self.discarded.append(deployment)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    return ValidatorConfig(
        target_version=TARGET_VERSION,
        baseline_version=BASELINE_VERSION,
        nns_url="http://localhost:8080",
        neuron_id="449479075714955186",
        wallet_canister="rwlgt-iiaaa-aaaaa-aaaaa-cai",
        pem=tmp_path / "identity.pem",
        ic_admin="/opt/bin/ic-admin",
        sns_quill="/opt/bin/sns-quill",
        idl2json="/opt/bin/idl2json",
        artifact_base_url="https://artifacts.test/ic",
        artifact_cache_dir=tmp_path / "artifacts",
        poll_interval=1,
        step_deadline=5,
    )


@pytest.fixture
def artifact_server():
    return ArtifactServer()


@pytest.fixture
def artifacts(config, artifact_server):
    client = httpx.Client(transport=httpx.MockTransport(artifact_server.handler))
    return ArtifactStore(config, http_client=client)


@pytest.fixture
def governance():
    return FakeGovernance()


@pytest.fixture
def provisioner(tmp_path, governance):
    return FakeProvisioner(tmp_path / "deployments", governance)


@pytest.fixture
def poller(config, clock):
    return Poller(config.poll_interval, config.step_deadline, clock, clock.sleep)


@pytest.fixture
def result_log(tmp_path):
    log = ResultLog(tmp_path / "run.log", echo=False)
    yield log
    log.close()


@pytest.fixture
def driver(config, artifacts, governance, poller, result_log):
    return UpgradeDriver(config, artifacts, governance, poller, result_log)


@pytest.fixture
def checker(config, artifacts, governance, poller, result_log):
    return ArtifactIntegrityChecker(config, artifacts, governance, poller, result_log)


@pytest.fixture
def baseline(config, artifacts, governance, poller, result_log):
    return SnsWasmBaseline(config, artifacts, governance, poller, result_log)


@pytest.fixture
def sweep(config, baseline, provisioner, driver, checker, result_log):
    return UpgradeSweep(config, baseline, provisioner, driver, checker, result_log)
