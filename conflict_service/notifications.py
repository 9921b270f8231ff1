"""
Conflict notifications (fire-and-forget).

Delivery is owned elsewhere (UI alerting); the engine only tells a Notifier
that a check found something. A failing notifier never changes the result.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from .schemas import ConflictResult

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    def conflict_detected(self, result: ConflictResult, case_id: Optional[int] = None) -> None:
        """Called for every check with level > NONE"""


class LoggingNotifier(Notifier):
    """Default notifier: writes the alert to the log"""

    def conflict_detected(self, result, case_id=None):
        target = f"case {case_id}" if case_id is not None else "ad-hoc search"
        logger.warning(
            f"Conflict detected for {target}: level={result.level.value}, "
            f"cases={result.conflicting_case_ids}, report={result.report_id}"
        )


def dispatch(notifier: Optional[Notifier], result: ConflictResult, case_id: Optional[int] = None) -> None:
    if notifier is None:
        return
    try:
        notifier.conflict_detected(result, case_id)
    except Exception:
        logger.exception("Conflict notification failed")
