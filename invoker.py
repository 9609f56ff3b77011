"""Sequential model fallback against the inference service."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from errors import UNKNOWN, AllCandidatesFailed, classify_failure
from interfaces import InferenceService
from models import InvocationAttempt

logger = logging.getLogger(__name__)


class ResilientInvoker:
    """
    Try each candidate model once, in order, until one answers.

    The first success wins; later candidates are never called. When every
    candidate fails, the last candidate's error is the one reported.
    """

    def __init__(self, service: InferenceService) -> None:
        self._service = service
        self.attempts: List[InvocationAttempt] = []

    def invoke(self, prompt: str, candidates: Sequence[str]) -> str:
        self.attempts = []
        if not candidates:
            raise AllCandidatesFailed("no candidate models configured", reason=UNKNOWN)

        last_error: Optional[Exception] = None
        for model in candidates:
            try:
                text = self._service.complete(model, prompt)
            except Exception as exc:
                logger.warning("Model %s failed, trying next: %s", model, exc)
                self.attempts.append(InvocationAttempt(model=model, success=False, error=str(exc)))
                last_error = exc
                continue
            self.attempts.append(InvocationAttempt(model=model, success=True, response_text=text))
            logger.debug("Model %s answered (%d chars)", model, len(text))
            return text

        logger.error("All %d candidate models failed", len(candidates))
        raise AllCandidatesFailed(
            str(last_error),
            reason=classify_failure(last_error),
            last_error=last_error,
            attempts=self.attempts,
        ) from last_error
