"""Stream content from a source onto a destination."""

import asyncio
import contextlib
import inspect
import logging
from typing import Any, Optional

from ..core.types import ByteStream
from ..exceptions import DestinationWriteError, SourceReadError, ValidationError
from .rater import Rater

logger = logging.getLogger(__name__)

# Default copy buffer size (5 MiB)
DEFAULT_BUFFER_SIZE = 5 * 1024 * 1024


async def populate(
    source: ByteStream,
    destination: Any,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    progress_interval: Optional[float] = None,
    destination_name: Optional[str] = None,
) -> int:
    """Copy ``source`` to ``destination`` until the source is exhausted.

    At most ``buffer_size`` bytes are held in memory at a time. Neither the
    source nor the destination is closed. On failure the bytes already
    written stay in the destination.

    Args:
        source: Stream with ``async read(n)``; wrap it in a Rater to measure it
        destination: Object with ``write(data)``, synchronous or awaitable,
            returning the number of bytes accepted; short writes are retried
        buffer_size: Maximum number of bytes per read
        progress_interval: Seconds between rate log lines when ``source`` is
            a Rater; None disables progress logging
        destination_name: Name used in errors and logs (e.g. device path)

    Returns:
        Number of bytes copied

    Raises:
        ValidationError: If buffer_size is not positive
        SourceReadError: If reading the source fails
        DestinationWriteError: If writing the destination fails or stalls
    """
    if buffer_size <= 0:
        raise ValidationError(f"buffer size must be positive, got {buffer_size}")

    name = destination_name or _describe(destination)
    reporter = None
    if progress_interval and isinstance(source, Rater):
        reporter = asyncio.ensure_future(_report_progress(source, progress_interval, name))

    copied = 0
    try:
        while True:
            try:
                chunk = await source.read(buffer_size)
            except Exception as e:
                raise SourceReadError(
                    f"failed to read source after {copied} bytes: {e}", destination=name
                ) from e
            if not chunk:
                break

            # Raw sinks may accept only part of a chunk
            view = memoryview(chunk)
            while view:
                try:
                    written = destination.write(view)
                    if inspect.isawaitable(written):
                        written = await written
                except Exception as e:
                    raise DestinationWriteError(
                        f"failed to write to {name} after {copied} bytes: {e}",
                        destination=name,
                        bytes_written=copied,
                    ) from e
                if not written:
                    raise DestinationWriteError(
                        f"short write to {name} after {copied} bytes",
                        destination=name,
                        bytes_written=copied,
                    )
                copied += written
                view = view[written:]
    finally:
        if reporter is not None:
            reporter.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reporter

    return copied


async def _report_progress(rater: Rater, interval: float, name: str) -> None:
    while True:
        await asyncio.sleep(interval)
        logger.info("Populating %s, rate %s", name, rater)


def _describe(destination: Any) -> str:
    name = getattr(destination, "name", None)
    if isinstance(name, str):
        return name
    return type(destination).__name__
