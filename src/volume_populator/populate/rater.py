"""Throughput measurement for byte streams."""

import time
from typing import Callable, Optional, Tuple

from ..core.types import ByteStream


class Rater:
    """Byte stream wrapper recording how fast content flows through it.

    The clock starts with the first successful read, so time spent before the
    copy begins is not counted, and stops when the wrapped stream reports end
    of content.
    """

    def __init__(self, source: ByteStream, clock: Callable[[], float] = time.monotonic) -> None:
        self._source = source
        self._clock = clock
        self.count = 0
        self.start: Optional[float] = None
        self.end: Optional[float] = None

    async def read(self, n: int = -1) -> bytes:
        started = self._clock()
        data = await self._source.read(n)
        if self.start is None:
            self.start = started
        self.count += len(data)
        if not data and n != 0 and self.end is None:
            self.end = self._clock()
        return data

    @property
    def done(self) -> bool:
        return self.end is not None

    def rate(self) -> Tuple[int, float]:
        """Return bytes transferred and elapsed seconds.

        Before end of content the elapsed time runs up to now.
        """
        if self.start is None:
            return self.count, 0.0
        end = self.end if self.end is not None else self._clock()
        return self.count, max(end - self.start, 0.0)

    @property
    def bytes_per_second(self) -> float:
        count, elapsed = self.rate()
        if elapsed <= 0:
            return 0.0
        return count / elapsed

    def __str__(self) -> str:
        return f"{self.bytes_per_second:.0f} b/s"
