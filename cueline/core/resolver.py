"""Position/command resolver coordination.

WHY: A model call takes longer than one clip to come back, and clips keep
arriving every two seconds. Stacking requests would flood the model and
apply old positions after newer ones. The resolver therefore keeps at most
one call in flight and one request waiting, and lets a newer clip replace
the waiting one.

HOW: submit() starts an asyncio task when idle, otherwise parks the request
in the single pending slot. Each call runs under asyncio.wait_for with the
configured timeout. Results and failures are handed to on_resolved /
on_failed callbacks; the session decides whether a result is stale.

RULES:
- At most one in-flight call and at most one pending request
- A newer request replaces the pending one (the replaced clip is dropped)
- Timeouts become InferenceError; CueLineError subclasses pass through;
  anything else is logged and reported as InferenceError
- cancel() drops the pending request and cancels the in-flight task
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional

from cueline.api.models import AudioClip, PlayerSnapshot, Resolution
from cueline.config import RESOLVER_TIMEOUT_S
from cueline.errors import CueLineError, InferenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolverRequest:
    """Everything needed to resolve one clip, stamped at submission time."""

    clip: AudioClip
    script_text: str
    scroll_speed: float
    snapshot: PlayerSnapshot
    generation: int


ResolveFn = Callable[[ResolverRequest], Awaitable[Resolution]]


class PositionResolver:
    """Serializes model calls for finalized clips."""

    def __init__(self, resolve: ResolveFn, timeout: float = RESOLVER_TIMEOUT_S) -> None:
        self._resolve = resolve
        self._timeout = timeout
        self._task: Optional[asyncio.Task] = None
        self._pending: Optional[ResolverRequest] = None

        self.on_resolved: Optional[Callable[[ResolverRequest, Resolution], None]] = None
        self.on_failed: Optional[Callable[[ResolverRequest, CueLineError], None]] = None

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> Optional[ResolverRequest]:
        return self._pending

    def submit(self, request: ResolverRequest) -> None:
        """Resolve ``request`` now, or queue it behind the in-flight call."""
        if self.busy:
            if self._pending is not None:
                logger.debug(
                    "Replacing pending clip %d with %d",
                    self._pending.clip.sequence, request.clip.sequence,
                )
            self._pending = request
            return
        self._start(request)

    def cancel(self) -> None:
        self._pending = None
        task, self._task = self._task, None
        # A failure callback may cancel from inside the task; it is finishing anyway
        if task is not None and not task.done() and task is not _running_task():
            task.cancel()

    async def wait_idle(self) -> None:
        """Wait until no call is in flight and nothing is pending."""
        while self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    def _start(self, request: ResolverRequest) -> None:
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(request))

    async def _run(self, request: ResolverRequest) -> None:
        cancelled = False
        try:
            resolution = await asyncio.wait_for(self._resolve(request), self._timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Resolver timed out after %.1fs (clip %d)", self._timeout, request.clip.sequence
            )
            self._fail(request, InferenceError("The AI request timed out. Please try again."))
        except CueLineError as exc:
            self._fail(request, exc)
        except asyncio.CancelledError:
            cancelled = True
            raise
        except Exception as exc:
            logger.exception("Resolver call failed (clip %d)", request.clip.sequence)
            self._fail(request, InferenceError("Could not process voice input: {}".format(exc)))
        else:
            if self.on_resolved:
                self.on_resolved(request, resolution)
        finally:
            current = asyncio.current_task()
            if self._task is current:
                self._task = None
            # Pending work belongs to whichever task owns the slot now
            if not cancelled and self._task is None and self._pending is not None:
                next_request, self._pending = self._pending, None
                self._start(next_request)

    def _fail(self, request: ResolverRequest, error: CueLineError) -> None:
        if self.on_failed:
            self.on_failed(request, error)


def _running_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
