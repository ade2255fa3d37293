"""Data models for resolved boot images and storage classes."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union

# Media types of bootable OS images. Images are published under both the
# onmetal and the ironcore vendor prefix.
MEDIA_TYPE_VENDORS = ("onmetal", "ironcore")

CONFIG_MEDIA_TYPE = "application/vnd.ironcore.image.config.v1alpha1+json"
ROOTFS_MEDIA_TYPE = "application/vnd.ironcore.image.rootfs.v1alpha1.rootfs"
INITRAMFS_MEDIA_TYPE = "application/vnd.ironcore.image.initramfs.v1alpha1.initramfs"
KERNEL_MEDIA_TYPE = "application/vnd.ironcore.image.vmlinuz.v1alpha1.vmlinuz"


class LayerRole(str, Enum):
    """Role of a layer within a bootable image."""

    CONFIG = "config"
    KERNEL = "kernel"
    INITRAMFS = "initramfs"
    ROOTFS = "rootfs"
    UNKNOWN = "unknown"


_MEDIA_TYPE_SUFFIXES = {
    "image.config.v1alpha1+json": LayerRole.CONFIG,
    "image.rootfs.v1alpha1.rootfs": LayerRole.ROOTFS,
    "image.initramfs.v1alpha1.initramfs": LayerRole.INITRAMFS,
    "image.vmlinuz.v1alpha1.vmlinuz": LayerRole.KERNEL,
}

MEDIA_TYPE_ROLES: Dict[str, LayerRole] = {
    f"application/vnd.{vendor}.{suffix}": role
    for vendor in MEDIA_TYPE_VENDORS
    for suffix, role in _MEDIA_TYPE_SUFFIXES.items()
}

# Roles an image must provide to be bootable, in reporting order.
REQUIRED_ROLES = (LayerRole.ROOTFS, LayerRole.KERNEL, LayerRole.INITRAMFS)


def role_for_media_type(media_type: str) -> LayerRole:
    """Classify a layer by its media type."""
    return MEDIA_TYPE_ROLES.get(media_type, LayerRole.UNKNOWN)


@dataclass(frozen=True)
class LayerDescriptor:
    """Content descriptor of a single layer."""

    digest: str
    media_type: str
    size: int

    @property
    def role(self) -> LayerRole:
        return role_for_media_type(self.media_type)


@dataclass(frozen=True)
class ResolvedLayer:
    """Layer whose content is present in the local store."""

    descriptor: LayerDescriptor
    path: Path

    @property
    def digest(self) -> str:
        return self.descriptor.digest

    @property
    def size(self) -> int:
        return self.descriptor.size


@dataclass(frozen=True)
class ImageConfig:
    """Boot configuration carried in the image config blob."""

    command_line: str = ""

    @classmethod
    def from_dict(cls, data: Dict) -> "ImageConfig":
        command_line = data.get("commandLine", "")
        if not isinstance(command_line, str):
            raise ValueError("commandLine must be a string")
        return cls(command_line=command_line)


@dataclass(frozen=True)
class Image:
    """A fully resolved bootable image.

    Instances are only built by the resolver once rootfs, kernel and initramfs
    are all present in the local store.
    """

    reference: str
    config: ImageConfig
    root_fs: ResolvedLayer
    kernel: ResolvedLayer
    initramfs: ResolvedLayer

    def layer(self, role: LayerRole) -> ResolvedLayer:
        """Return the resolved layer for ``role``.

        Raises:
            KeyError: If the role does not carry file content
        """
        layers = {
            LayerRole.ROOTFS: self.root_fs,
            LayerRole.KERNEL: self.kernel,
            LayerRole.INITRAMFS: self.initramfs,
        }
        try:
            return layers[LayerRole(role)]
        except (KeyError, ValueError):
            raise KeyError(f"image has no file layer for role {role!r}") from None


@dataclass(frozen=True)
class StorageClass:
    """Named storage capability profile (volume or bucket class)."""

    name: str
    capabilities: Dict[str, Union[int, float]] = field(default_factory=dict)

    def capability(self, key: str) -> Optional[Union[int, float]]:
        return self.capabilities.get(key)
