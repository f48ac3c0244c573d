"""
Error hierarchy for the root protocol.

Every error carries the owner and the content identifier it concerns
(when known) plus the underlying cause, so a caller has enough to
retry or alert. Nothing in the core retries on its own.
"""

from __future__ import annotations

from typing import Optional


class RootVaultError(Exception):
    """Base class for all rootvault failures."""

    def __init__(
        self,
        message: str,
        owner: Optional[str] = None,
        identifier: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.owner = owner
        self.identifier = identifier
        self.cause = cause

    def __str__(self) -> str:
        text = super().__str__()
        if self.cause is not None:
            text = f"{text}: {self.cause}"
        return text


class UploadFailed(RootVaultError):
    """A single file in a batch could not be encrypted or stored.

    The whole batch is aborted. ``name`` and ``index`` point at the
    file that failed.
    """

    def __init__(
        self,
        name: str,
        index: int,
        cause: Optional[BaseException] = None,
        owner: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Upload failed for file #{index} '{name}'",
            owner=owner,
            cause=cause,
        )
        self.name = name
        self.index = index


class CommitFailed(RootVaultError):
    """The pointer transaction did not reach successful finality.

    ``identifier`` is the root blob that was uploaded but never
    committed. It is left in the store.
    """


class CorruptIndex(RootVaultError):
    """The committed root blob exists but cannot be parsed."""


class IndexUnavailable(RootVaultError):
    """The pointer is set but the root blob could not be fetched."""


class DeleteIgnored(RootVaultError):
    """Cleanup of a superseded root failed. Logged, never raised."""


class DecryptionFailed(RootVaultError):
    """A payload could not be decrypted (wrong key or malformed envelope)."""


class ContentStoreError(RootVaultError):
    """The content store rejected or failed a request."""


class LedgerError(RootVaultError):
    """The pointer ledger rejected or failed a request."""


class ConfigError(RootVaultError):
    """Configuration could not be loaded or validated."""
