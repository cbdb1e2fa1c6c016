"""
Credential Reveal Guard

Shared account secrets are stored obfuscated and shown only inside a short
reveal window that closes by itself.

The guard is a disclosure control for the UI only. The stored form is not
encrypted (see subshare.credentials.obfuscation), so the guard gives no
protection against anyone with access to the store.
"""

import asyncio
from typing import Optional

import structlog

from subshare.credentials.obfuscation import reveal_secret
from subshare.errors import CredentialsConcealedError
from subshare.models.ledger import MASKED_SECRET, Service
from subshare.services.clipboard import ClipboardInterface


logger = structlog.get_logger(__name__)


class CredentialRevealGuard:
    """
    Time-boxed disclosure of one service's secret.

    Only one reveal window exists at a time: revealing service B while
    service A is counting down closes A's window and cancels its timer.

    The countdown advances through tick(). When reveal() is called from
    inside a running event loop the guard schedules its own ticks every
    tick_seconds; outside a loop the caller drives tick().
    """

    def __init__(self, duration: int = 10, tick_seconds: float = 1.0):
        if duration < 1:
            raise ValueError("Reveal duration must be at least one tick")
        self._duration = duration
        self._tick_seconds = tick_seconds
        self._service_id: Optional[str] = None
        self._time_left = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def duration(self) -> int:
        return self._duration

    @property
    def active_service_id(self) -> Optional[str]:
        return self._service_id

    @property
    def time_left(self) -> int:
        return self._time_left

    @property
    def timer_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_revealed(self, service_id: str) -> bool:
        return self._service_id == service_id and self._time_left > 0

    def reveal(self, service_id: str) -> int:
        """Open a reveal window for service_id, replacing any other one."""
        self._cancel_timer()
        self._service_id = service_id
        self._time_left = self._duration
        self._start_timer()
        logger.debug("credentials_revealed", service_id=service_id, duration=self._duration)
        return self._time_left

    def tick(self) -> int:
        """Advance the countdown by one; conceals automatically at zero."""
        if self._service_id is None:
            return 0
        self._time_left -= 1
        if self._time_left <= 0:
            self.conceal()
        return self._time_left

    def conceal(self) -> Optional[str]:
        """Close the reveal window. Returns the service that was revealed."""
        service_id = self._service_id
        self._cancel_timer()
        self._service_id = None
        self._time_left = 0
        if service_id is not None:
            logger.debug("credentials_concealed", service_id=service_id)
        return service_id

    def close(self) -> None:
        """Tear down: conceal and make sure no timer outlives the view."""
        self.conceal()

    def display(self, service: Service) -> str:
        """What the credentials field shows right now."""
        if self.is_revealed(service.id):
            return reveal_secret(service.credentials)
        return MASKED_SECRET

    def copy_secret(self, service: Service, clipboard: ClipboardInterface) -> str:
        """
        Copy the decoded secret to the clipboard.

        Raises:
            CredentialsConcealedError: the service is not currently revealed
        """
        if not self.is_revealed(service.id):
            raise CredentialsConcealedError("Reveal the credentials before copying them")
        secret = reveal_secret(service.credentials)
        clipboard.copy(secret)
        return secret

    def _start_timer(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = loop.create_task(self._countdown(self._service_id))

    def _cancel_timer(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def _countdown(self, service_id: str) -> None:
        while self._service_id == service_id and self._time_left > 0:
            await asyncio.sleep(self._tick_seconds)
            if self._service_id != service_id:
                return
            self.tick()
