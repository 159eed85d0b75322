"""
SNS canister upgrade-order validator - command line entry point.

Usage: sns-upgrade-order <VERSION> <SNS_CANISTER_TYPE> (<SNS_CANISTER_TYPE>...)

Upgrades a fresh SNS to VERSION once for every possible order of the given
canister types, then re-upgrades each canister from the ungzipped WASM and
checks the installed module hash. Per-ordering failures are written to the
log file and do not change the exit status; scan the log for failures.
"""

import argparse
import sys
from typing import List, Optional

from loguru import logger

from .config import ValidatorConfig
from .connectivity import ArtifactStore, CommandRunner, GovernanceClient, SnsProvisioner
from .core.constants import MODULE_LOG_FORMAT
from .core.exceptions import ConfigurationError, UpgradeOrderError
from .ordering import OrderGenerator, exclude_untestable, parse_canister_types
from .progress import HumanReadableFormatter, ResultLog
from .sweep import UpgradeSweep, prepare_nns
from .upgrade import (
    ArtifactIntegrityChecker,
    Poller,
    SnsWasmBaseline,
    UpgradeDriver,
)

EXIT_OK = 0
EXIT_SETUP_FAILURE = 1
EXIT_ORDERINGS_FAILED = 2

EPILOG = """
  VERSION: Version to test (generally git hash, could be build id)
  SNS_CANISTER_TYPE: Human readable SNS canister name
    (root, governance, ledger, swap, archive, index)

  NOTE: NNS_URL, NEURON_ID, WALLET_CANISTER, PEM, IC_ADMIN, SNS_QUILL and
    IDL2JSON must be set as environment variables. Sourcing
    output_vars_nns_state_deployment.sh from your working directory gives
    you the needed variables in your shell.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sns-upgrade-order",
        description="Test upgrading SNS canisters to a version in every possible order",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("version", nargs="?", help="Version to test")
    parser.add_argument(
        "canister_types", nargs="*", metavar="SNS_CANISTER_TYPE", help="Canisters to upgrade"
    )
    parser.add_argument("--poll-interval", dest="poll_interval", type=float)
    parser.add_argument("--step-deadline", dest="step_deadline", type=float)
    parser.add_argument("--log-file", dest="log_file")
    parser.add_argument(
        "--baseline-version",
        dest="baseline_version",
        help="Version every test SNS starts from (default: NNS governance's version)",
    )
    parser.add_argument(
        "--skip-nns-upgrade",
        action="store_true",
        help="Do not upgrade NNS governance before testing",
    )
    parser.add_argument(
        "--fail-on-aborted",
        action="store_true",
        help=f"Exit with status {EXIT_ORDERINGS_FAILED} if any ordering did not pass",
    )
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def configure_logging(verbose: bool) -> None:
    """Route module logs to stderr; run log lines have their own sinks."""
    logger.remove()
    logger.add(
        sys.stderr,
        format=MODULE_LOG_FORMAT,
        level="DEBUG" if verbose else "WARNING",
        filter=lambda record: "result_log" not in record["extra"],
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if not args.version or not args.canister_types:
        parser.print_help(sys.stderr)
        return EXIT_SETUP_FAILURE

    try:
        canister_types = exclude_untestable(parse_canister_types(args.canister_types))
        orderings = OrderGenerator(canister_types)
        config = ValidatorConfig.from_env(
            args.version,
            poll_interval=args.poll_interval,
            step_deadline=args.step_deadline,
            log_file=args.log_file,
            baseline_version=args.baseline_version,
            skip_nns_upgrade=args.skip_nns_upgrade,
            fail_on_aborted=args.fail_on_aborted,
        )
    except ConfigurationError as e:
        logger.error(e.message)
        if e.remediation:
            logger.error(e.remediation)
        parser.print_help(sys.stderr)
        return EXIT_SETUP_FAILURE

    result_log = ResultLog(config.log_file)
    print(f"Log file is {result_log.path}")

    try:
        runner = CommandRunner(config.command_timeout)
        governance = GovernanceClient(config, runner)
        artifacts = ArtifactStore(config)
        poller = Poller(config.poll_interval, config.step_deadline)

        try:
            nns_version = prepare_nns(config, governance, artifacts, poller, result_log)
        except UpgradeOrderError as e:
            result_log.failure(f"Pre-flight failed: {e.message}")
            return EXIT_SETUP_FAILURE

        baseline_version = config.baseline_version or nns_version
        if baseline_version == config.target_version:
            result_log.failure(
                f"Test SNSes would start on {baseline_version}, the version under "
                "test; set BASELINE_VERSION to the version to upgrade from"
            )
            return EXIT_SETUP_FAILURE
        config = config.model_copy(update={"baseline_version": baseline_version})

        result_log.info(
            f"Testing {len(orderings)} upgrade orderings of "
            f"{', '.join(t.value for t in canister_types)} to {config.target_version}"
        )
        sweep = UpgradeSweep(
            config,
            SnsWasmBaseline(config, artifacts, governance, poller, result_log),
            SnsProvisioner(config, runner, governance),
            UpgradeDriver(config, artifacts, governance, poller, result_log),
            ArtifactIntegrityChecker(config, artifacts, governance, poller, result_log),
            result_log,
        )
        summary = sweep.run(orderings)
    except ConfigurationError as e:
        result_log.failure(f"Aborting sweep: {e.message}")
        return EXIT_SETUP_FAILURE
    finally:
        result_log.close()

    HumanReadableFormatter.print_sweep_summary(summary)
    print(f"Test logs recorded in: {result_log.path}")

    if config.fail_on_aborted and not summary.all_passed:
        return EXIT_ORDERINGS_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
