"""Named boolean checks over responses (or any other value)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rampforge._internal.logging import get_logger
from rampforge.metrics.models import CheckResult

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = get_logger("dsl.checks")


def evaluate_checks(
    subject: Any,
    checks: Mapping[str, Callable[[Any], object]],
    *,
    scenario: str = "default",
) -> list[CheckResult]:
    """Run every predicate in *checks* against *subject*.

    A predicate passes when it returns a truthy value.  A predicate that
    raises counts as failed; the exception is logged at DEBUG and never
    propagates, so a failing check cannot stop a virtual user.

    Args:
        subject: Value handed to each predicate, typically a ``Response``.
        checks: Check name -> predicate.
        scenario: Scenario name stamped on each result.

    Returns:
        One :class:`CheckResult` per predicate, in mapping order.

    Example::

        evaluate_checks(response, {"status equals 200": lambda r: r.status == 200})
    """
    results = []
    for name, predicate in checks.items():
        try:
            passed = bool(predicate(subject))
        except Exception:
            logger.debug("Check %r raised; counting it as failed", name, exc_info=True)
            passed = False
        results.append(CheckResult(name=name, passed=passed, scenario=scenario))
    return results
