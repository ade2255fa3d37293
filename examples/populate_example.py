"""Example usage of the volume populator against a local registry."""

import asyncio
import logging
import sys
import tempfile
from pathlib import Path

from volume_populator import (
    ClassRegistry,
    IncompleteImageError,
    LocalStore,
    PopulatorError,
    RegistryClient,
    RegistryConfig,
    populate_image,
    resolve_image,
)

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

REGISTRY = "localhost:15000"
IMAGE = f"{REGISTRY}/ironcore/gardenlinux:latest"


async def inspect_image(store: LocalStore):
    """Resolve an image and show where its components were stored."""
    async with RegistryClient(RegistryConfig(default_registry=REGISTRY)) as registry:
        if not await registry.ping():
            logger.error(f"Registry {REGISTRY} is not reachable")
            return

        try:
            image = await resolve_image(registry, store, IMAGE)
        except IncompleteImageError as e:
            logger.error(f"Image is not bootable, missing: {', '.join(e.missing_roles)}")
            return

        logger.info(f"Kernel command line: {image.config.command_line!r}")
        for layer in (image.root_fs, image.kernel, image.initramfs):
            logger.info(f"  {layer.digest} -> {layer.path} ({layer.size} bytes)")


async def populate_file(store: LocalStore, target: Path):
    """Write the rootfs of an image into a regular file standing in for a device."""
    async with RegistryClient(RegistryConfig(default_registry=REGISTRY)) as registry:
        written = await populate_image(
            registry, store, IMAGE, target, progress_interval=1.0, create=True
        )
    logger.info(f"Wrote {written} bytes to {target}")


def show_classes():
    """Load volume classes and look one up."""
    classes = ClassRegistry.load(
        """
        - name: fast
          capabilities: {iops: 5000, tps: 200}
        - name: slow
          capabilities: {iops: 100}
        """
    )
    fast, found = classes.get("fast")
    if found:
        logger.info(f"Class {fast.name}: iops={fast.capability('iops')}")


async def main():
    with tempfile.TemporaryDirectory() as tmp:
        store = LocalStore(Path(tmp) / "store")
        try:
            await inspect_image(store)
            await populate_file(store, Path(tmp) / "rootfs.img")
        except PopulatorError as e:
            logger.error(f"Populator error: {e}")
            return 1
    show_classes()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
