"""Domain models for certificate synchronisation."""
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Credential:
    """A certificate/private-key pair, treated as opaque bytes."""
    cert: bytes
    key: bytes


class Fetcher(Protocol):
    """Reads the current credential from a source backend."""

    def fetch(self) -> Credential:
        ...


class Syncer(Protocol):
    """Makes a destination backend hold the given credential."""

    def sync(self, cert: bytes, key: bytes) -> None:
        ...


class SyncError(Exception):
    """Backend call failure, tagged with the operation that failed."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation}: {cause}")
