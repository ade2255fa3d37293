"""Command line entry point for the volume populator."""

import argparse
import asyncio
import dataclasses
import logging
import os
import sys
from typing import List, Optional

from .classes import ClassRegistry
from .config import load_config
from .core.registry_client import RegistryClient
from .exceptions import PopulatorError
from .models import LayerRole
from .populate import populate_image
from .store import LocalStore

logger = logging.getLogger("volume_populator")

PASSWORD_ENV = "VOLUME_POPULATOR_REGISTRY_PASSWORD"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="volume-populator",
        description="Populate block devices with bootable OS images.",
    )
    p.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = p.add_subparsers(dest="command", required=True)

    pop = sub.add_parser("populate", help="Write an image layer onto a block device")
    pop.add_argument(
        "--image", "-i",
        required=True,
        help="Image reference the device should be populated with",
    )
    pop.add_argument(
        "--config", "-c",
        dest="config_file",
        default=None,
        help="YAML configuration file",
    )
    pop.add_argument(
        "--store-path",
        default=None,
        help="Location of the local image store (default: /tmp)",
    )
    pop.add_argument(
        "--device", "-d",
        dest="device_path",
        default=None,
        help="Block device to populate (default: /dev/block)",
    )
    pop.add_argument(
        "--buffer-size",
        type=int,
        default=None,
        help="Buffer size in bytes used while copying the image (default: 5 MiB)",
    )
    pop.add_argument(
        "--role",
        choices=[LayerRole.ROOTFS.value, LayerRole.KERNEL.value, LayerRole.INITRAMFS.value],
        default=LayerRole.ROOTFS.value,
        help="Image layer to write (default: rootfs)",
    )
    pop.add_argument(
        "--create",
        action="store_true",
        help="Create the destination as a regular file if it does not exist",
    )
    pop.add_argument(
        "--username",
        default=None,
        help=f"Registry user; the password is read from ${PASSWORD_ENV}",
    )
    pop.add_argument(
        "--insecure-registry",
        action="append",
        default=[],
        help="Registry host reached over plain HTTP (repeatable)",
    )

    cls = sub.add_parser("classes", help="Inspect a volume or bucket class file")
    cls.add_argument("file", help="YAML or JSON class list")
    cls.add_argument("name", nargs="?", default=None, help="Show only this class")

    return p.parse_args(argv)


async def run_populate(args: argparse.Namespace) -> int:
    config = load_config(args.config_file).with_overrides(
        store_path=args.store_path,
        device_path=args.device_path,
        buffer_size=args.buffer_size,
    )

    registry_config = config.registry
    if args.username:
        registry_config = dataclasses.replace(
            registry_config,
            username=args.username,
            password=os.environ.get(PASSWORD_ENV),
        )
    if args.insecure_registry:
        registry_config = dataclasses.replace(
            registry_config,
            insecure_registries=registry_config.insecure_registries
            + tuple(args.insecure_registry),
        )

    store = LocalStore(config.store_path)
    async with RegistryClient(registry_config) as registry:
        await populate_image(
            registry,
            store,
            args.image,
            config.device_path,
            role=LayerRole(args.role),
            buffer_size=config.buffer_size,
            progress_interval=config.progress_interval,
            create=args.create,
        )
    return 0


def run_classes(args: argparse.Namespace) -> int:
    registry = ClassRegistry.load_file(args.file)
    if args.name is not None:
        storage_class, found = registry.get(args.name)
        if not found:
            logger.error("Class %s not found in %s", args.name, args.file)
            return 1
        classes = [storage_class]
    else:
        classes = sorted(registry.list(), key=lambda c: c.name)

    for storage_class in classes:
        caps = ", ".join(f"{k}={v}" for k, v in sorted(storage_class.capabilities.items()))
        print(f"{storage_class.name}\t{caps}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "populate":
            return asyncio.run(run_populate(args))
        return run_classes(args)
    except PopulatorError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
