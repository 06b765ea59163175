"""
voiceturn - Interrupt Controller
================================

Cooperative cancellation for one pipeline run.

A run gets a fresh ``CancellationToken``; every stage checks it at its
suspension boundaries (after transcription returns, after each LLM
increment, after each synthesis/playback chunk) and drops its result if
the token is set. Setting the token never aborts an in-flight request.

Teardown callbacks registered for the run (stop capture, stop playback)
run at most once and are safe to trigger from any state.
"""

import inspect
import itertools
import logging
from typing import Awaitable, Callable, List, Optional, Union

from voiceturn.core.errors import Cancelled


logger = logging.getLogger(__name__)

_run_ids = itertools.count(1)

TeardownCallback = Callable[[], Union[None, Awaitable[None]]]


class CancellationToken:
    """Set-once cancellation flag shared by all stages of one run."""

    def __init__(self):
        self.run_id = next(_run_ids)
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise Cancelled(f"run {self.run_id} cancelled")

    def __repr__(self) -> str:
        return f"CancellationToken(run_id={self.run_id}, cancelled={self._cancelled})"


class InterruptController:
    """
    Owns the current run's token and teardown routine.

    Usage:
        controller = InterruptController()
        token = controller.begin_run()
        controller.add_teardown(capture_stop)
        ...
        controller.interrupt()      # from hotkey / click / hide
        await controller.teardown()
    """

    def __init__(self):
        self._token: Optional[CancellationToken] = None
        self._teardown: List[TeardownCallback] = []

    @property
    def token(self) -> Optional[CancellationToken]:
        return self._token

    def begin_run(self) -> CancellationToken:
        """Cancel the previous run's token (if any) and issue a new one."""
        if self._token is not None:
            self._token.cancel()
        self._token = CancellationToken()
        self._teardown = []
        return self._token

    def add_teardown(self, callback: TeardownCallback) -> None:
        self._teardown.append(callback)

    def interrupt(self) -> None:
        """Set the current run's cancellation flag."""
        if self._token is not None and not self._token.cancelled:
            logger.debug("[Interrupt] Cancelling run %d", self._token.run_id)
            self._token.cancel()

    @staticmethod
    def checkpoint(token: CancellationToken) -> None:
        """Raise ``Cancelled`` if the stage must discard its result."""
        token.raise_if_cancelled()

    async def teardown(self) -> None:
        """Run the registered teardown callbacks once, newest first."""
        callbacks, self._teardown = self._teardown, []
        for callback in reversed(callbacks):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # Remaining steps still run
                logger.exception("[Interrupt] Teardown step failed")
