import logging
from typing import Optional

from parser.dsl_models import Expected
from runner.result import Summary, TestStatus

logger = logging.getLogger(__name__)


def evaluate_outcome(summary: Summary, expected: Expected) -> TestStatus:
    """All three counters must match exactly; there is no partial credit."""
    if (
        summary.successes != expected.successes
        or summary.failures != expected.failures
        or summary.timeouts != expected.timeouts
    ):
        logger.error(
            "Expectations were not met "
            f"(successes {summary.successes}/{expected.successes}, "
            f"failures {summary.failures}/{expected.failures}, "
            f"timeouts {summary.timeouts}/{expected.timeouts} actual/expected)"
        )
        return TestStatus.FAILED

    logger.info("Expectations were met")
    return TestStatus.PASSED


def exit_code(status: TestStatus) -> int:
    return 0 if status == TestStatus.PASSED else 1


def format_summary(summary: Summary, metrics_link: Optional[str] = None) -> str:
    lines = [
        "============================",
        "== Test Summary",
        "===============",
        "==",
        f"== Started: {summary.start}",
        f"== Ended: {summary.end}",
        f"== Runs: {summary.tests_ran}/{summary.tests_to_run}",
        "==",
        f"== Successes: {summary.successes}/{summary.failures} (success/failure)",
        f"== Timeouts: {summary.timeouts}",
    ]
    if metrics_link:
        lines += ["==", f"== Metrics: {metrics_link}"]
    return "\n".join(lines)


def print_summary(summary: Summary, metrics_link: Optional[str] = None) -> None:
    print(format_summary(summary, metrics_link))
