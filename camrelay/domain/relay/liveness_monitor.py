"""Liveness monitor for the upstream producer.

Samples producer statistics on a fixed interval and declares the producer
stalled after a number of consecutive samples without packet-count growth.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from loguru import logger

from camrelay.services.media.engine import Producer
from camrelay.services.media.media_service import MediaService
from camrelay.utils.app_errors import AppError


class SampleOutcome(str, Enum):
    PROGRESS = "progress"
    NO_PROGRESS = "no_progress"
    # Sampling failed; neither counts as a stall nor resets the stall counter
    UNKNOWN = "unknown"
    STALLED = "stalled"

    def __str__(self) -> str:
        return self.value


def extract_packet_count(stats: list[dict[str, Any]]) -> int | None:
    """Sum ``packetCount`` over the stats entries.

    An empty stats list means nothing was received yet and counts as zero.
    A non-empty list without any packet counter is unreadable and yields None.
    """
    if not stats:
        return 0

    counts = [entry["packetCount"] for entry in stats if isinstance(entry, dict) and "packetCount" in entry]
    if not counts:
        return None
    return sum(int(count) for count in counts)


class LivenessMonitor:
    """Periodic stall detector bound to one producer.

    The owner (the producer lifecycle manager) guarantees at most one running
    monitor; a monitor only ever reports on the producer it was created for.
    """

    def __init__(
        self,
        producer: Producer,
        media: MediaService,
        *,
        on_stall: Callable[[str], Awaitable[Any]],
        interval: float = 5.0,
        threshold: int = 3,
    ) -> None:
        self._producer = producer
        self._media = media
        self._on_stall = on_stall
        self._interval = interval
        self._threshold = max(1, threshold)

        self._last_count = 0
        self._stall_count = 0
        self._stalled = False
        self._task: asyncio.Task | None = None

    @property
    def producer_id(self) -> str:
        return self._producer.id

    @property
    def stall_count(self) -> int:
        return self._stall_count

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=f"liveness:{self._producer.id}")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        # Stopping from inside the stall callback: the loop exits on its own
        if task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def sample(self) -> SampleOutcome:
        """Take one statistics sample and apply the stall policy.

        Reaching the threshold invokes the stall callback until it succeeds
        once; later samples keep returning STALLED without calling it again.
        """
        if self._stalled:
            return SampleOutcome.STALLED

        try:
            stats = await self._media.get_producer_stats(self._producer)
        except AppError as e:
            logger.warning(f"Liveness sample failed: producer={self._producer.id} error={e}")
            return SampleOutcome.UNKNOWN

        count = extract_packet_count(stats)
        if count is None:
            logger.warning(f"Liveness sample has no packet counter: producer={self._producer.id}")
            return SampleOutcome.UNKNOWN

        if count > self._last_count:
            self._last_count = count
            self._stall_count = 0
            return SampleOutcome.PROGRESS

        self._last_count = count
        self._stall_count += 1
        logger.warning(
            f"No packets received: producer={self._producer.id} "
            f"stall_count={self._stall_count}/{self._threshold} packet_count={count}"
        )

        if self._stall_count < self._threshold:
            return SampleOutcome.NO_PROGRESS

        logger.warning(f"Producer stalled, closing: producer={self._producer.id}")
        try:
            await self._on_stall(self._producer.id)
        except Exception:
            logger.exception(f"Stall handler failed, retrying on next sample: producer={self._producer.id}")
            return SampleOutcome.NO_PROGRESS

        self._stalled = True
        return SampleOutcome.STALLED

    async def _run(self) -> None:
        logger.info(f"Liveness monitor started: producer={self._producer.id} interval={self._interval}s")
        try:
            while True:
                await asyncio.sleep(self._interval)
                try:
                    outcome = await self.sample()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.exception(f"Liveness tick error: {exc}")
                    continue
                if outcome == SampleOutcome.STALLED:
                    break
        except asyncio.CancelledError:
            logger.debug(f"Liveness monitor cancelled: producer={self._producer.id}")
            raise
        logger.info(f"Liveness monitor stopped: producer={self._producer.id}")
