import asyncio
import logging
from typing import Any, Awaitable, Optional

from pycell.cell_datatypes import CellError, Interrupted

logger = logging.getLogger(__name__)


def _consume(fut: asyncio.Future) -> None:
    # Mark the exception as retrieved so an unawaited signal never warns.
    if not fut.cancelled():
        fut.exception()


class CancellationController:
    """Arms and fires a one-shot cancellation signal per execution cycle.

    Exactly one signal is armed at a time. Firing it rejects whatever is
    racing against it and arms a fresh one, so the next execution can be
    cancelled independently of this one.
    """

    def __init__(self, message: str = "Interrupted asynchronously"):
        self.message = message
        self._signal: Optional[asyncio.Future] = None

    def _arm(self) -> Optional[asyncio.Future]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._signal = None
            return None
        fut = loop.create_future()
        fut.add_done_callback(_consume)
        self._signal = fut
        return fut

    def current(self) -> asyncio.Future:
        """The armed signal, (re)armed on the running loop if needed."""
        fut = self._signal
        if fut is None or fut.done() or fut.get_loop() is not asyncio.get_running_loop():
            fut = self._arm()
        return fut

    def interrupt(self) -> None:
        """Fire the armed signal. Safe to call when nothing is in flight."""
        fut = self._signal
        if fut is not None and fut.get_loop().is_closed():
            self._signal = None
            return
        if fut is not None and not fut.done():
            logger.debug("cancellation signal fired")
            fut.set_exception(Interrupted(self.message))
            self._arm()

    async def race(self, awaitable: Awaitable[Any]) -> Any:
        """Await `awaitable` unless the signal fires first.

        Raises `Interrupted` when cancelled; the losing task is cancelled too,
        which only takes effect at its next suspension point.
        """
        signal = self.current()
        task = asyncio.ensure_future(awaitable)
        try:
            await asyncio.wait({task, signal}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task.done():
            if task.cancelled():
                raise CellError("cell task was cancelled")
            return task.result()
        task.cancel()
        exc = signal.exception()
        raise exc if exc is not None else Interrupted(self.message)
