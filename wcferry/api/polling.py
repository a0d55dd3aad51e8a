"""
Bounded polling for operations the host completes out of band.

The host gives no completion callback for some work (materialising a chat room
record, converting a voice message, OCR, decrypting a downloaded image), so the
result is discovered by re-issuing a probe on a fixed cadence. What happens when
the attempts run out differs per operation, and each policy below says so:

- MembershipPoll: gives up quietly with an empty mapping
- AudioPoll, OcrPoll, DecryptPoll: give up with WcfTimeoutError

A policy never sleeps after its last probe, and checks its cancel event only
between attempts, never in the middle of a wait.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from ..exceptions import WcfCancelledError, WcfTimeoutError
from .types import Const

T = TypeVar("T")

# A probe returns None (or an empty value) while the host is not done yet
Probe = Callable[[], Awaitable[Optional[T]]]


@dataclass
class PollPolicy(ABC, Generic[T]):
    attempts: int
    delay: float = Const.POLL_DELAY
    cancel: Optional[asyncio.Event] = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    async def run(self, probe: Probe) -> T:
        for attempt in range(1, self.attempts + 1):
            if self.cancel is not None and self.cancel.is_set():
                raise WcfCancelledError(f"{type(self).__name__} cancelled before attempt {attempt}")
            result = await probe()
            if self.accept(result):
                return result
            self.logger.debug(f"{type(self).__name__}: attempt {attempt}/{self.attempts} not ready")
            if attempt < self.attempts:
                await self.wait()
        return self.exhausted()

    def accept(self, result: Optional[T]) -> bool:
        return bool(result)

    async def wait(self):
        await asyncio.sleep(self.delay)

    @abstractmethod
    def exhausted(self) -> T:
        """Result, or exception, once every attempt came back not ready"""


@dataclass
class MembershipPoll(PollPolicy[dict[str, str]]):
    """Chat room members: the room record may not exist yet. Exhaustion yields {}."""
    attempts: int = Const.MEMBERSHIP_ATTEMPTS

    def accept(self, result: Optional[dict[str, str]]) -> bool:
        return result is not None

    def exhausted(self) -> dict[str, str]:
        return {}


@dataclass
class AudioPoll(PollPolicy[str]):
    """Voice message to MP3. Exhaustion is a timeout."""
    attempts: int = Const.AUDIO_ATTEMPTS

    def exhausted(self) -> str:
        raise WcfTimeoutError("Timeout: get audio msg")


@dataclass
class OcrPoll(PollPolicy[str]):
    """OCR of a received image. Exhaustion is a timeout."""
    attempts: int = Const.OCR_ATTEMPTS

    def exhausted(self) -> str:
        raise WcfTimeoutError("Timeout: get ocr result")


@dataclass
class DecryptPoll(PollPolicy[str]):
    """Decrypting a downloaded image. Exhaustion rejects the whole download."""
    attempts: int = Const.DECRYPT_ATTEMPTS

    def exhausted(self) -> str:
        raise WcfTimeoutError("Failed to decrypt image")
