"""Tests for streaming population."""

import asyncio
import io
import logging
import math
import os

import pytest

from tests.helpers import (
    AsyncSink,
    BytesStream,
    FailingStream,
    FailingWriter,
    FakeRegistry,
    TrickleWriter,
    os_image,
    rootfs_layer,
)
from volume_populator.exceptions import (
    DestinationWriteError,
    IncompleteImageError,
    SourceReadError,
    ValidationError,
)
from volume_populator.models import LayerRole
from volume_populator.populate import Rater, populate, populate_image

BUFFER_SIZE = 64 * 1024


def payload(size: int) -> bytes:
    return os.urandom(size)


class TestPopulate:
    """Test copying a source stream into a sink."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [0, 1, 65536, 3 * BUFFER_SIZE + 123])
    async def test_copies_exact_bytes(self, size):
        data = payload(size)
        destination = io.BytesIO()

        copied = await populate(BytesStream(data), destination, buffer_size=BUFFER_SIZE)

        assert copied == size
        assert destination.getvalue() == data

    @pytest.mark.asyncio
    async def test_reads_are_bounded_by_buffer_size(self):
        data = payload(10 * 1024)
        source = BytesStream(data)

        await populate(source, io.BytesIO(), buffer_size=1024)

        # Ten full reads plus the end-of-content read
        assert source.reads == 11

    @pytest.mark.asyncio
    async def test_short_reads_are_handled(self):
        data = payload(100_000)
        destination = io.BytesIO()

        copied = await populate(BytesStream(data, max_chunk=777), destination, buffer_size=BUFFER_SIZE)

        assert copied == len(data)
        assert destination.getvalue() == data

    @pytest.mark.asyncio
    async def test_async_destination(self):
        data = payload(200_000)
        destination = AsyncSink()

        copied = await populate(BytesStream(data), destination, buffer_size=BUFFER_SIZE)

        assert copied == len(data)
        assert bytes(destination.data) == data
        assert destination.writes == math.ceil(len(data) / BUFFER_SIZE)

    @pytest.mark.asyncio
    async def test_read_failure_aborts(self):
        destination = io.BytesIO()

        with pytest.raises(SourceReadError, match="read source"):
            await populate(
                FailingStream(payload(4096), fail_after=1024),
                destination,
                buffer_size=512,
            )

        # Bytes written before the failure stay in place
        assert len(destination.getvalue()) == 1024

    @pytest.mark.asyncio
    async def test_write_failure_aborts(self):
        destination = FailingWriter(capacity=1000)

        with pytest.raises(DestinationWriteError) as exc_info:
            await populate(BytesStream(payload(4096)), destination, buffer_size=512)

        assert exc_info.value.destination == "/dev/full-device"
        assert exc_info.value.bytes_written == 512
        assert "/dev/full-device" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_short_writes_are_completed(self):
        data = payload(10 * 1024)
        destination = TrickleWriter(limit=1000)

        copied = await populate(BytesStream(data), destination, buffer_size=4096)

        assert copied == len(data)
        assert bytes(destination.data) == data
        assert destination.writes == 13

    @pytest.mark.asyncio
    async def test_stalled_destination_aborts(self):
        destination = TrickleWriter(limit=0)

        with pytest.raises(DestinationWriteError, match="short write") as exc_info:
            await populate(BytesStream(payload(4096)), destination, buffer_size=1024)

        assert exc_info.value.bytes_written == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("buffer_size", [0, -1])
    async def test_rejects_invalid_buffer_size(self, buffer_size):
        with pytest.raises(ValidationError):
            await populate(BytesStream(b"data"), io.BytesIO(), buffer_size=buffer_size)

    @pytest.mark.asyncio
    async def test_ten_mebibytes_through_rater(self):
        data = payload(10 * 1024 * 1024)
        destination = io.BytesIO()
        rater = Rater(BytesStream(data))

        copied = await populate(rater, destination)

        assert copied == len(data)
        assert destination.getvalue() == data
        count, elapsed = rater.rate()
        assert count == len(data)
        assert rater.done
        assert elapsed > 0
        assert rater.bytes_per_second > 0

    @pytest.mark.asyncio
    async def test_progress_is_logged(self, caplog):
        class SlowStream(BytesStream):
            async def read(self, n=-1):
                await asyncio.sleep(0.02)
                return await super().read(n)

        rater = Rater(SlowStream(payload(4096)))

        with caplog.at_level(logging.INFO, logger="volume_populator.populate.copy"):
            await populate(
                rater,
                io.BytesIO(),
                buffer_size=512,
                progress_interval=0.01,
                destination_name="/dev/vdb",
            )

        assert "Populating /dev/vdb" in caplog.text
        assert "b/s" in caplog.text


class TestPopulateImage:
    """Test the resolve-and-populate pipeline."""

    @pytest.mark.asyncio
    async def test_populates_device_with_rootfs(self, tmp_path, store):
        data = payload(300_000)
        registry = FakeRegistry({"os:v1": os_image(rootfs=rootfs_layer(data))})
        device = tmp_path / "device"
        device.write_bytes(b"\0" * (len(data) + 100))

        copied = await populate_image(
            registry, store, "os:v1", device, buffer_size=BUFFER_SIZE, progress_interval=None
        )

        assert copied == len(data)
        written = device.read_bytes()
        # The device is not truncated, only overwritten
        assert written[: len(data)] == data
        assert written[len(data) :] == b"\0" * 100

    @pytest.mark.asyncio
    async def test_populates_other_role(self, registry, store, tmp_path):
        target = tmp_path / "kernel.img"

        copied = await populate_image(
            registry, store, "os:v1", target, role=LayerRole.KERNEL, create=True
        )

        assert copied == len(b"kernel-content")
        assert target.read_bytes() == b"kernel-content"

    @pytest.mark.asyncio
    async def test_missing_device(self, registry, store, tmp_path):
        device = tmp_path / "missing-device"

        with pytest.raises(DestinationWriteError, match="missing-device"):
            await populate_image(registry, store, "os:v1", device)

        assert not device.exists()

    @pytest.mark.asyncio
    async def test_incomplete_image_leaves_device_untouched(self, store, tmp_path):
        registry = FakeRegistry({"os:v1": os_image(initramfs=None)})
        device = tmp_path / "device"
        device.write_bytes(b"original")

        with pytest.raises(IncompleteImageError, match="initramfs"):
            await populate_image(registry, store, "os:v1", device)

        assert device.read_bytes() == b"original"
