"""
Model Cascade

Walks an ordered list of candidate models until one answers. Each failed
attempt is classified explicitly:

- CONTINUE: model not found, quota exhausted, or service overloaded
- ABORT: anything else, notably authentication/authorization failures

If every candidate asks to continue, the cascade reports EXHAUSTED instead of
raising, so callers can tell "no suggestions" from "AI unavailable".
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

logger = logging.getLogger("relay.suggest.cascade")

# (model, prompt) -> raw response text
Backend = Callable[[str, str], str]

SOFT_FAIL_STATUS_CODES = {404, 429, 503}
SOFT_FAIL_MARKERS = (
    "not found",
    "quota",
    "resource exhausted",
    "resource_exhausted",
    "rate limit",
    "overloaded",
    "unavailable",
)
SOFT_FAIL_CODE_RE = re.compile(r"\b(404|429|503)\b")


class Attempt(str, Enum):
    """Verdict on one failed attempt"""
    CONTINUE = "continue"
    ABORT = "abort"


class CascadeOutcome(str, Enum):
    """Final state of a cascade run"""
    SUCCESS = "success"
    ABORTED = "aborted"
    EXHAUSTED = "exhausted"


@dataclass
class CascadeResult:
    """Result of ModelCascade.run"""
    outcome: CascadeOutcome
    text: str = ""
    model: Optional[str] = None
    attempts: int = 0
    error: Optional[BaseException] = None
    tried: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.outcome == CascadeOutcome.SUCCESS


def classify_failure(error: BaseException) -> Attempt:
    """
    Decide whether a failed attempt may fall through to the next model.

    An HTTP status attribute is authoritative when present
    (google.api_core exceptions carry ``code``, httpx-style errors
    ``status_code``); otherwise the message is inspected.
    """
    for attr in ("code", "status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool) and value >= 100:
            return Attempt.CONTINUE if value in SOFT_FAIL_STATUS_CODES else Attempt.ABORT

    message = str(error).lower()
    if any(marker in message for marker in SOFT_FAIL_MARKERS):
        return Attempt.CONTINUE
    if SOFT_FAIL_CODE_RE.search(message):
        return Attempt.CONTINUE
    return Attempt.ABORT


class ModelCascade:
    """
    Ordered fallback over candidate models.

    Usage:
        cascade = ModelCascade(["gemini-2.0-flash", "gemini-1.5-pro"], backend)
        result = cascade.run(prompt)
        if result.succeeded:
            print(result.model, result.text)
    """

    def __init__(
        self,
        models: Sequence[str],
        backend: Backend,
        classify: Callable[[BaseException], Attempt] = classify_failure,
    ):
        if not models:
            raise ValueError("ModelCascade needs at least one candidate model")
        self.models = list(models)
        self._backend = backend
        self._classify = classify

    def run(self, prompt: str) -> CascadeResult:
        tried: List[str] = []
        last_error: Optional[BaseException] = None

        for model in self.models:
            tried.append(model)
            try:
                text = self._backend(model, prompt)
            except Exception as e:
                verdict = self._classify(e)
                if verdict == Attempt.ABORT:
                    logger.error("Model %s failed hard, aborting cascade: %s", model, e)
                    return CascadeResult(
                        outcome=CascadeOutcome.ABORTED,
                        model=model,
                        attempts=len(tried),
                        error=e,
                        tried=tried,
                    )
                logger.warning("Model %s unavailable (%s), trying next", model, e)
                last_error = e
                continue

            logger.info("Model %s answered after %d attempt(s)", model, len(tried))
            return CascadeResult(
                outcome=CascadeOutcome.SUCCESS,
                text=text or "",
                model=model,
                attempts=len(tried),
                tried=tried,
            )

        logger.warning("All %d candidate models unavailable", len(tried))
        return CascadeResult(
            outcome=CascadeOutcome.EXHAUSTED,
            attempts=len(tried),
            error=last_error,
            tried=tried,
        )
