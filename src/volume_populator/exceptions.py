"""Custom exceptions for the volume populator."""

from typing import Iterable, Optional


class PopulatorError(Exception):
    """Base exception for all volume populator errors."""

    pass


class ValidationError(PopulatorError):
    """Raised when a reference, digest or configuration value is invalid."""

    pass


class RegistryError(PopulatorError):
    """Base exception for all registry-related errors."""

    pass


class RegistryConnectionError(RegistryError):
    """Raised when unable to connect to the registry."""

    pass


class AuthenticationError(RegistryError):
    """Raised when the registry rejects the supplied credentials."""

    pass


class ManifestError(RegistryError):
    """Raised when manifest operations fail."""

    pass


class ImageNotFoundError(ManifestError):
    """Raised when the registry does not know the requested reference."""

    pass


class BlobError(RegistryError):
    """Raised when a blob cannot be fetched from the registry."""

    pass


class ResolutionError(PopulatorError):
    """Raised when an image reference cannot be resolved into an image."""

    def __init__(self, message: str, reference: Optional[str] = None) -> None:
        super().__init__(message)
        self.reference = reference


class IncompleteImageError(ResolutionError):
    """Raised when mandatory layers are missing from an image."""

    def __init__(self, reference: str, missing_roles: Iterable[str]) -> None:
        self.missing_roles = list(missing_roles)
        super().__init__(
            f"incomplete image {reference}: components are missing: "
            f"{', '.join(self.missing_roles)}",
            reference=reference,
        )


class LocalizationError(PopulatorError):
    """Raised when content cannot be materialized in the local store."""

    def __init__(self, message: str, digest: Optional[str] = None) -> None:
        super().__init__(message)
        self.digest = digest


class DigestMismatchError(LocalizationError):
    """Raised when streamed content does not hash to its declared digest."""

    pass


class StreamingError(PopulatorError):
    """Base exception for failures while populating a destination."""

    def __init__(self, message: str, destination: Optional[str] = None) -> None:
        super().__init__(message)
        self.destination = destination


class SourceReadError(StreamingError):
    """Raised when reading from the source stream fails."""

    pass


class DestinationWriteError(StreamingError):
    """Raised when writing to the destination fails.

    Bytes already written are not rolled back; ``bytes_written`` tells how far
    the destination got before the failure.
    """

    def __init__(
        self, message: str, destination: Optional[str] = None, bytes_written: int = 0
    ) -> None:
        super().__init__(message, destination=destination)
        self.bytes_written = bytes_written


class ClassRegistryError(PopulatorError):
    """Raised when a class list cannot be loaded."""

    pass


class DuplicateClassError(ClassRegistryError):
    """Raised when two classes share the same name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"multiple classes with same name ({name}) found")
        self.name = name
