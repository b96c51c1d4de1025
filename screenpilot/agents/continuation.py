"""
Continuation policy - decides whether the agent loop runs another iteration.
"""

from typing import List, Optional

from logger import logger

from ..models import ActionResult, ContinuationSettings, ModelResponse


def recent_success_rate(results: List[ActionResult], window: int) -> Optional[float]:
    """
    Success rate over the last `window` action results.

    Meta results are ignored. Returns None until `window` results exist.
    """
    actions = [r for r in results if not r.meta]
    if len(actions) < window:
        return None
    recent = actions[-window:]
    return sum(1 for r in recent if r.success) / len(recent)


def recent_failures(results: List[ActionResult], window: int) -> int:
    """Number of failed action results among the last `window`."""
    actions = [r for r in results if not r.meta]
    return sum(1 for r in actions[-window:] if not r.success)


def should_continue(
    results: List[ActionResult],
    response: ModelResponse,
    settings: Optional[ContinuationSettings] = None,
) -> bool:
    """
    Decide whether to start another iteration.

    Stops when the trailing success rate drops below min_success_rate, when
    the model's confidence is below min_confidence, or when too many of the
    most recent actions failed.
    """
    settings = settings or ContinuationSettings()

    rate = recent_success_rate(results, settings.success_window)
    if rate is not None and rate < settings.min_success_rate:
        logger.warning(
            f"[AGENT] Stopping: success rate {rate:.2f} below {settings.min_success_rate}"
        )
        return False

    if response.confidence < settings.min_confidence:
        logger.warning(
            f"[AGENT] Stopping: confidence {response.confidence:.2f} below {settings.min_confidence}"
        )
        return False

    failures = recent_failures(results, settings.failure_window)
    if failures >= settings.failure_threshold:
        logger.warning(
            f"[AGENT] Stopping: {failures} of the last {settings.failure_window} actions failed"
        )
        return False

    return True
