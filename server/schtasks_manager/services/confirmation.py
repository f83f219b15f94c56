"""Confirmation gate for operations that change or remove scheduled tasks."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from ..core.config import settings

logger = logging.getLogger(__name__)

PromptCallback = Callable[[str, str], bool]


class ConfirmImpact(str, Enum):
    """Impact level declared by an operation."""

    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


_IMPACT_RANK = {
    ConfirmImpact.NONE: 0,
    ConfirmImpact.LOW: 1,
    ConfirmImpact.MEDIUM: 2,
    ConfirmImpact.HIGH: 3,
}


class ConfirmationResult(str, Enum):
    """Outcome of a confirmation request."""

    PROCEED = "proceed"
    DECLINED = "declined"
    FAILED = "failed"


class ConfirmationGate:
    """Decide whether a mutating operation may run.

    ``confirm=False`` bypasses prompting, ``confirm=True`` always prompts, and
    otherwise a prompt is shown only when the operation's impact reaches the
    configured preference. ``what_if`` previews the operation without running
    it.
    """

    def __init__(
        self,
        confirm_preference: Optional[str] = None,
        prompt: Optional[PromptCallback] = None,
    ) -> None:
        preference = confirm_preference or settings.confirm_preference
        try:
            self.confirm_preference = ConfirmImpact(preference.strip().title())
        except ValueError:
            logger.warning(
                "Unknown confirm preference '%s'; defaulting to High", preference
            )
            self.confirm_preference = ConfirmImpact.HIGH
        self.prompt = prompt

    def should_process(
        self,
        target: str,
        action: str,
        impact: ConfirmImpact = ConfirmImpact.MEDIUM,
        *,
        confirm: Optional[bool] = None,
        what_if: bool = False,
    ) -> ConfirmationResult:
        if what_if:
            logger.info('What if: Performing the operation "%s" on target "%s".', action, target)
            return ConfirmationResult.DECLINED

        if confirm is False:
            return ConfirmationResult.PROCEED

        if not confirm and not self._requires_prompt(impact):
            return ConfirmationResult.PROCEED

        if self.prompt is None:
            logger.error(
                "Confirmation required for %s on %s but no prompt is available", action, target
            )
            return ConfirmationResult.FAILED

        try:
            accepted = bool(self.prompt(target, action))
        except Exception:
            logger.exception("Confirmation prompt for %s on %s failed", action, target)
            return ConfirmationResult.FAILED

        if not accepted:
            logger.info("Operation %s on %s declined", action, target)
            return ConfirmationResult.DECLINED
        return ConfirmationResult.PROCEED

    def _requires_prompt(self, impact: ConfirmImpact) -> bool:
        if self.confirm_preference is ConfirmImpact.NONE:
            return False
        return _IMPACT_RANK[ConfirmImpact(impact)] >= _IMPACT_RANK[self.confirm_preference]


__all__ = [
    "ConfirmImpact",
    "ConfirmationGate",
    "ConfirmationResult",
    "PromptCallback",
]
