# storefront/sessions.py
"""
Generation sessions exposed over HTTP.

Each session owns exactly one tracker, keyed by its generation id, so two
views never share a token space. Sessions live in memory only and expire.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from cachetools import TTLCache

from .errors import AppError, ValidationError
from .tracker import GenerationClient, GenerationTracker
from .utils import gen_generation_id

logger = logging.getLogger(__name__)


@dataclass
class GenerationSession:
    generation_id: str
    prompt: str
    style: str
    tracker: GenerationTracker


class GenerationSessions:
    def __init__(
        self,
        client: GenerationClient,
        maxsize: int = 256,
        ttl: float = 3600,
        tick_interval: Optional[float] = None,
    ):
        self._client = client
        self._tick_interval = tick_interval
        self._sessions: TTLCache[str, GenerationSession] = TTLCache(maxsize=maxsize, ttl=ttl)

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, prompt: str, style: str = "") -> GenerationSession:
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt is required")

        generation_id = gen_generation_id()
        tracker = GenerationTracker(
            self._client,
            on_success=lambda url: logger.info("[Sessions] %s finished: %s", generation_id, url),
            on_error=lambda err: logger.warning("[Sessions] %s failed: %s", generation_id, err),
            tick_interval=self._tick_interval,
        )
        session = GenerationSession(generation_id, prompt, style, tracker)
        self._sessions[generation_id] = session
        tracker.start(prompt, style)
        return session

    def get(self, generation_id: str) -> GenerationSession:
        session = self._sessions.get(generation_id)
        if session is None:
            raise AppError("Generation not found", status_code=404)
        return session

    def cancel(self, generation_id: str) -> GenerationSession:
        session = self.get(generation_id)
        session.tracker.cancel()
        return session

    def retry(self, generation_id: str) -> GenerationSession:
        """Start the same prompt again on the session's own tracker."""
        session = self.get(generation_id)
        if session.tracker.is_active:
            raise ValidationError("Generation is still running")
        session.tracker.start(session.prompt, session.style)
        return session
