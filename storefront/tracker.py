# storefront/tracker.py
"""
Perceived-progress state machine for one image generation.

The tracker walks preparing -> queued -> generating -> finalizing ->
completed on a timer, and only on entering ``completed`` issues the one real
call to the generation client. Progress within a phase is simulated: it has
no relationship to how long the upstream call actually takes.

Every ``start()`` gets a fresh token. Results are applied only while their
token is current, and at most one callback fires per token, so a response
that lands after ``cancel()`` (or after a restart) changes nothing.
"""

import asyncio
import logging
import random
import time
from typing import Callable, Optional, Protocol, Set

from config.settings import settings

from .model import GenerationPhase, GenerationProgress, GenerationRequestParams, GenerationResult

logger = logging.getLogger(__name__)


class GenerationClient(Protocol):
    async def generate(self, params: GenerationRequestParams, max_retries: int = 2) -> GenerationResult:
        ...


NEXT_PHASE = {
    GenerationPhase.PREPARING: GenerationPhase.QUEUED,
    GenerationPhase.QUEUED: GenerationPhase.GENERATING,
    GenerationPhase.GENERATING: GenerationPhase.FINALIZING,
    GenerationPhase.FINALIZING: GenerationPhase.COMPLETED,
}

PHASE_MESSAGES = {
    GenerationPhase.PREPARING: "Preparing your request...",
    GenerationPhase.QUEUED: "Waiting in queue...",
    GenerationPhase.GENERATING: "Generating your masterpiece...",
    GenerationPhase.FINALIZING: "Finalizing your artwork...",
    GenerationPhase.COMPLETED: "Your artwork is ready!",
    GenerationPhase.FAILED: "Failed to generate image",
}

TERMINAL_PHASES = (GenerationPhase.COMPLETED, GenerationPhase.FAILED)
MAX_TICK_INCREMENT = 15.0


class GenerationTracker:
    def __init__(
        self,
        client: GenerationClient,
        on_success: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_progress: Optional[Callable[[GenerationProgress], None]] = None,
        tick_interval: Optional[float] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self._on_success = on_success
        self._on_error = on_error
        self._on_progress = on_progress
        self.tick_interval = tick_interval if tick_interval is not None else settings.TRACKER_TICK_INTERVAL
        self._rng = rng or random.Random()
        self._clock = clock

        self._progress = GenerationProgress()
        self.is_active = False
        self.image_url: Optional[str] = None
        self.error: Optional[BaseException] = None

        self._last_token = 0
        self._current_token: Optional[int] = None
        self._callback_fired = False
        self._loop_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def progress(self) -> GenerationProgress:
        return self._progress

    @property
    def elapsed(self) -> Optional[float]:
        if self._progress.start_time is None:
            return None
        return self._clock() - self._progress.start_time

    def _set_progress(self, progress: GenerationProgress) -> None:
        self._progress = progress
        if self._on_progress:
            self._on_progress(progress)

    def start(self, prompt: str, style: str = "") -> None:
        """Begin a generation. No-op for a blank prompt or while one is active."""
        if not prompt or not prompt.strip():
            logger.info("[Tracker] Ignoring start with empty prompt")
            return
        if self.is_active:
            logger.info("[Tracker] Generation already active, ignoring start")
            return

        params = GenerationRequestParams(prompt=prompt, style=style or "")

        self._last_token += 1
        token = self._last_token
        self._current_token = token
        self._callback_fired = False
        self.image_url = None
        self.error = None
        self.is_active = True

        self._set_progress(
            GenerationProgress(
                status=GenerationPhase.PREPARING,
                progress=0,
                message=PHASE_MESSAGES[GenerationPhase.PREPARING],
                start_time=self._clock(),
            )
        )
        logger.info("[Tracker] Generation %d started: %s", token, prompt[:50])
        self._loop_task = asyncio.create_task(self._run(token, params))

    def cancel(self) -> None:
        """
        Stop the tick loop and reset to idle. An upstream call already in
        flight keeps running, but its result is discarded.
        """
        if not self.is_active:
            return

        logger.info("[Tracker] Generation %s cancelled", self._current_token)
        self._current_token = None
        self.is_active = False
        if self._loop_task and not self._loop_task.done():
            self._loop_task.cancel()
        self._loop_task = None

        self._set_progress(
            GenerationProgress(status=GenerationPhase.IDLE, progress=0, message="Generation cancelled")
        )

    async def _run(self, token: int, params: GenerationRequestParams) -> None:
        while self._current_token == token:
            if self._tick(token, params):
                return
            await asyncio.sleep(self.tick_interval)

    def _tick(self, token: int, params: GenerationRequestParams) -> bool:
        """Advance the simulation one step. Returns True once the loop should stop."""
        prev = self._progress
        if prev.status in TERMINAL_PHASES:
            return True

        if prev.progress >= 100:
            phase = NEXT_PHASE[prev.status]
            if phase is GenerationPhase.COMPLETED:
                self._set_progress(
                    prev.model_copy(
                        update={"status": phase, "progress": 100, "message": PHASE_MESSAGES[phase]}
                    )
                )
                self._issue_request(token, params)
                return True

            self._set_progress(
                prev.model_copy(update={"status": phase, "progress": 0, "message": PHASE_MESSAGES[phase]})
            )
            return False

        step = self._rng.uniform(0, MAX_TICK_INCREMENT)
        self._set_progress(prev.model_copy(update={"progress": min(prev.progress + step, 100)}))
        return False

    def _issue_request(self, token: int, params: GenerationRequestParams) -> None:
        # Fire and forget: the tick loop is already done.
        task = asyncio.create_task(self._request(token, params))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _request(self, token: int, params: GenerationRequestParams) -> None:
        try:
            result = await self._client.generate(params)
        except Exception as e:
            logger.error("[Tracker] Generation %d failed: %s", token, e)
            self._resolve(token, error=e)
            return
        self._resolve(token, image_url=result.image_url)

    def _resolve(
        self,
        token: int,
        image_url: Optional[str] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        if token != self._current_token or self._callback_fired:
            logger.info("[Tracker] Discarding stale result for generation %d", token)
            return

        self._callback_fired = True
        self.is_active = False

        if error is None:
            self.image_url = image_url
            self._set_progress(
                self._progress.model_copy(
                    update={
                        "status": GenerationPhase.COMPLETED,
                        "progress": 100,
                        "message": PHASE_MESSAGES[GenerationPhase.COMPLETED],
                    }
                )
            )
            if self._on_success:
                self._on_success(image_url)
        else:
            self.error = error
            self._set_progress(
                self._progress.model_copy(
                    update={
                        "status": GenerationPhase.FAILED,
                        "message": PHASE_MESSAGES[GenerationPhase.FAILED],
                    }
                )
            )
            if self._on_error:
                self._on_error(error)
