"""
Human-readable output formatting for console display.

Prints the per-ordering results table once the sweep is over.
"""

from ..core.dataclasses import SweepSummary, format_ordering
from ..core.enums import OrderingOutcome

OUTCOME_ICONS = {
    OrderingOutcome.PASSED: "✅",
    OrderingOutcome.UPGRADE_TIMEOUT: "⏱️ ",
    OrderingOutcome.INTEGRITY_FAILURE: "❌",
    OrderingOutcome.PROVISIONING_FAILED: "🚫",
    OrderingOutcome.UNEXPECTED_ERROR: "💥",
}


class HumanReadableFormatter:
    """Formats sweep results for CLI users."""

    @staticmethod
    def print_banner(title: str, width: int = 80):
        print(f"\n{'=' * width}")
        print(f"🎯 {title.upper()}")
        print(f"{'=' * width}")

    @staticmethod
    def format_sweep_summary(summary: SweepSummary) -> str:
        """
        Render the results table.

        Args:
            summary: Results of every attempted ordering

        Returns:
            Multi-line table text
        """
        lines = [
            f"Target version: {summary.target_version}",
            f"✅ Passed: {summary.passed} | ❌ Failed: {summary.failed} | "
            f"📋 Total: {summary.total}",
            f"{'─' * 100}",
            f"{'UPGRADE ORDER':<50} {'OUTCOME':<22} {'FAILED AT'}",
            f"{'─' * 50} {'─' * 22} {'─' * 26}",
        ]

        for result in summary.results:
            outcome = result.outcome or OrderingOutcome.PROVISIONING_FAILED
            icon = OUTCOME_ICONS.get(outcome, "⚪")
            failed_at = ""
            if result.failed_canister is not None:
                failed_at = f"step {result.failed_step} ({result.failed_canister.value})"
            lines.append(
                f"{format_ordering(result.ordering):<50} "
                f"{icon} {outcome.value:<19} {failed_at}"
            )

        lines.append(f"{'─' * 100}")
        return "\n".join(lines)

    @staticmethod
    def print_sweep_summary(summary: SweepSummary):
        HumanReadableFormatter.print_banner("Upgrade order results")
        print(HumanReadableFormatter.format_sweep_summary(summary))
