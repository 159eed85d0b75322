"""
Tests for NNS/SNS governance commands, driven through a recording runner.
"""

import json

import httpx
import pytest

from sns_upgrade_order.connectivity.governance_client import (
    GovernanceClient,
    candid_blob,
)
from sns_upgrade_order.core.constants import SNS_WASM_CANISTER_ID
from sns_upgrade_order.core.dataclasses import ArtifactReference, DeploymentInstance
from sns_upgrade_order.core.enums import ArtifactVariant, CanisterType
from sns_upgrade_order.core.exceptions import TransientNetworkError

HASH = "ab" * 32


class RecordingRunner:
    """Returns canned output keyed by the first matching argument."""

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.commands = []

    def run(self, args, input=None, cwd=None):
        args = [str(arg) for arg in args]
        self.commands.append((args, input))
        for key, output in self.responses.items():
            if key in args:
                return output
        return ""


@pytest.fixture
def artifact(tmp_path):
    return ArtifactReference(
        CanisterType.GOVERNANCE,
        ArtifactVariant.COMPRESSED,
        b"gz",
        HASH,
        tmp_path / "sns-governance-canister.wasm.gz",
    )


@pytest.fixture
def deployment(tmp_path):
    return DeploymentInstance(
        "upgrade-test-1",
        {CanisterType.GOVERNANCE: "gov-id", CanisterType.SWAP: "swap-id"},
        "0a0b",
        tmp_path,
    )


def make_client(config, runner, handler=None):
    handler = handler or (lambda request: httpx.Response(200))
    return GovernanceClient(
        config, runner, httpx.Client(transport=httpx.MockTransport(handler))
    )


def test_candid_blob():
    assert candid_blob("00ff10") == 'blob "\\00\\ff\\10"'


def latest_version(**hashes):
    names = {"root": "Root", "governance": "Governance", "ledger": "Ledger", "swap": "Swap"}
    return json.dumps([[names[t], h] for t, h in hashes.items()])


def test_publish_skips_wasm_that_is_already_latest(config, artifact):
    runner = RecordingRunner({config.idl2json: latest_version(governance=HASH.upper())})
    client = make_client(config, runner)

    assert client.publish_wasm(artifact) is False
    assert not any("propose-to-add-wasm-to-sns-wasm" in args for args, _ in runner.commands)
    query = runner.commands[0][0]
    assert SNS_WASM_CANISTER_ID in query and "get_latest_sns_version_pretty" in query


def test_publish_adds_wasm_that_is_stored_but_not_latest(config, artifact):
    runner = RecordingRunner(
        {config.idl2json: latest_version(root=HASH, governance="cd" * 32)}
    )
    client = make_client(config, runner)

    assert client.publish_wasm(artifact) is True
    args = runner.commands[-1][0]
    assert args[0] == config.ic_admin
    assert "propose-to-add-wasm-to-sns-wasm" in args
    assert args[args.index("--wasm-module-sha256") + 1] == HASH
    assert args[args.index("--canister-type") + 1] == "governance"
    assert args[args.index("--proposer") + 1] == config.neuron_id


def test_latest_version_accepts_record_objects(config):
    output = json.dumps([{"0": "Ledger", "1": HASH}, {"0": "Root", "1": "cd" * 32}])
    client = make_client(config, RecordingRunner({config.idl2json: output}))

    assert client.latest_hash(CanisterType.LEDGER) == HASH
    assert client.latest_hash(CanisterType.SWAP) is None


def test_index_is_always_added_and_settles_once_stored(config, tmp_path):
    index = ArtifactReference(
        CanisterType.INDEX, ArtifactVariant.COMPRESSED, b"gz", HASH, tmp_path / "i.gz"
    )
    runner = RecordingRunner({config.idl2json: json.dumps({"wasm": [{"wasm": []}]})})
    client = make_client(config, runner)

    assert client.publish_wasm(index) is True
    assert client.publish_settled(index) is True
    assert "get_wasm" in runner.commands[-2][0]


def test_publish_settles_when_sns_w_serves_the_artifact(config, artifact):
    client = make_client(
        config, RecordingRunner({config.idl2json: latest_version(governance=HASH)})
    )

    assert client.publish_settled(artifact) is True


def test_unexpected_response_shape_is_transient(config):
    client = make_client(config, RecordingRunner({config.idl2json: "[]"}))

    with pytest.raises(TransientNetworkError):
        client.wasm_registered(HASH)


def test_malformed_latest_version_entry_is_transient(config):
    client = make_client(config, RecordingRunner({config.idl2json: '[["Root"]]'}))

    with pytest.raises(TransientNetworkError):
        client.latest_sns_version()


def test_sns_cli_version(config):
    runner = RecordingRunner({"--version": "sns 0.9.0\n"})

    assert make_client(config, runner).sns_cli_version() == "sns 0.9.0"
    assert runner.commands[0][0] == [config.sns_cli, "--version"]


def test_sns_canister_upgrade_goes_through_sns_governance(config, artifact, deployment):
    runner = RecordingRunner({"make-proposal": '{"signed": true}'})
    client = make_client(config, runner)

    client.propose_upgrade(deployment, CanisterType.GOVERNANCE, artifact)

    (make, _), (send, send_input) = runner.commands
    assert make[0] == config.sns_quill
    assert make[make.index("make-proposal") + 1] == "0a0b"
    assert "UpgradeSnsToNextVersion" in make[make.index("--proposal") + 1]
    assert str(deployment.workdir / "sns_canister_ids.json") in make
    assert "send" in send
    assert send_input == '{"signed": true}'


def test_swap_upgrade_goes_through_nns(config, artifact, deployment):
    runner = RecordingRunner()
    client = make_client(config, runner)

    client.propose_upgrade(deployment, CanisterType.SWAP, artifact)

    (args, _), = runner.commands
    assert "propose-to-change-nns-canister" in args
    assert args[args.index("--canister-id") + 1] == "swap-id"


def test_canister_version_reads_git_commit_metadata(config):
    runner = RecordingRunner({"metadata": "1.0.0\n"})
    client = make_client(config, runner)

    assert client.canister_version("gov-id") == "1.0.0"
    args = runner.commands[0][0]
    assert args[:4] == [config.dfx, "canister", "--network", config.nns_url]
    assert args[-2:] == ["gov-id", "git_commit_id"]


def test_module_hash_parses_canister_info(config):
    info = f"Controllers: aaaaa-aa\nModule hash: 0x{HASH.upper()}\n"
    client = make_client(config, RecordingRunner({"info": info}))

    assert client.module_hash("gov-id") == HASH


def test_module_hash_of_empty_canister(config):
    client = make_client(config, RecordingRunner({"info": "Module hash: None\n"}))

    assert client.module_hash("gov-id") is None


def test_developer_neuron_id_accepts_byte_lists(config):
    neurons = {"neurons": [{"id": [{"id": [10, 11]}]}]}
    client = make_client(config, RecordingRunner({config.idl2json: json.dumps(neurons)}))

    assert client.developer_neuron_id("gov-id", "2vxsx-fae") == "0a0b"


def test_developer_neuron_missing_is_transient(config):
    client = make_client(config, RecordingRunner({config.idl2json: '{"neurons": []}'}))

    with pytest.raises(TransientNetworkError):
        client.developer_neuron_id("gov-id", "2vxsx-fae")


def test_unparseable_idl2json_output_is_transient(config):
    client = make_client(config, RecordingRunner({config.idl2json: "not json"}))

    with pytest.raises(TransientNetworkError):
        client.wasm_registered(HASH)


def test_principal_from_public_ids(config):
    output = "Principal id: 2vxsx-fae\nLegacy account id: 1234\n"
    client = make_client(config, RecordingRunner({"public-ids": output}))

    assert client.principal() == "2vxsx-fae"


def test_check_endpoint(config):
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200)

    make_client(config, RecordingRunner(), handler).check_endpoint()

    assert seen == ["http://localhost:8080/api/v2/status"]


def test_unreachable_endpoint_is_transient(config):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientNetworkError):
        make_client(config, RecordingRunner(), handler).check_endpoint()
