"""
RootVault -- the one object callers talk to.

    store_files  ->  resolve current root -> encrypt + upload each file
                     -> prepend + upload new root -> commit pointer
                     -> retire old root
    load_files   ->  resolve current root -> fetch + decrypt each file
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .config import RootVaultConfig, create_ledger, create_store, load_config
from .crypto import CryptoAdapter, KeyText
from .errors import IndexUnavailable
from .ledger import PointerLedger
from .models import (
    IndexResolution,
    IndexStatus,
    RootIndex,
    StoredFile,
    StorePhase,
    StoreResult,
)
from .root_index import PhaseCallback, RootIndexManager
from .store import ChunkCallback, ContentStore, RootCidCallback
from .transfer import FileStoredCallback, FileTransferOrchestrator

logger = logging.getLogger("rootvault.client")


class RootVault:
    """Encrypted, versioned file roots for any number of owners.

    Holds no per-owner state between calls. Writes for the same owner
    must be serialized by the caller.

    Args:
        store: Content store for file payloads and root blobs.
        ledger: Pointer ledger holding each owner's current root.
        crypto: Crypto adapter. A default one is created if omitted.
        strict_index_fetch: Raise instead of returning an empty index
            when a committed root cannot be fetched.
    """

    def __init__(
        self,
        store: ContentStore,
        ledger: PointerLedger,
        crypto: Optional[CryptoAdapter] = None,
        strict_index_fetch: bool = False,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.crypto = crypto or CryptoAdapter()
        self.index = RootIndexManager(store, ledger, strict_index_fetch=strict_index_fetch)
        self.transfer = FileTransferOrchestrator(store, self.crypto)

    @classmethod
    def from_config(cls, config: RootVaultConfig) -> "RootVault":
        """Build a vault and its adapters from explicit configuration."""
        return cls(
            store=create_store(config.store, config.home),
            ledger=create_ledger(config.ledger, config.home),
            strict_index_fetch=config.strict_index_fetch,
        )

    @classmethod
    def open(cls, home: Optional[Path] = None) -> "RootVault":
        """Build a vault from ``<home>/config.yaml``."""
        return cls.from_config(load_config(home))

    def store_files(
        self,
        owner: str,
        files: list[StoredFile],
        encrypt_key: Optional[KeyText] = None,
        on_phase: Optional[PhaseCallback] = None,
        on_file_stored: Optional[FileStoredCallback] = None,
        on_root_cid_ready: Optional[RootCidCallback] = None,
        on_stored_chunk: Optional[ChunkCallback] = None,
    ) -> StoreResult:
        """Upload ``files`` for ``owner`` and commit a new root.

        Args:
            owner: Whose root to extend.
            files: Files to add, in order.
            encrypt_key: Owner's public key PEM. None stores plaintext.
            on_phase: Observer for state transitions.
            on_file_stored: Observer called after each file upload.
            on_root_cid_ready: Forwarded to each file upload.
            on_stored_chunk: Forwarded to each file upload.

        Returns:
            StoreResult with the new root and the uploaded descriptors.

        Raises:
            IndexUnavailable: The owner has a root that cannot be fetched.
            CorruptIndex: The owner's current root cannot be parsed.
            UploadFailed: A file could not be stored; nothing was committed.
            CommitFailed: The pointer did not move; uploads are orphaned.
        """
        notify = on_phase or (lambda phase: None)
        notify(StorePhase.START)

        current = self.index.resolve(owner)
        if current.status == IndexStatus.UNAVAILABLE:
            raise IndexUnavailable(
                "Refusing to replace a root that cannot be fetched",
                owner=owner,
                identifier=current.root_id,
            )

        notify(StorePhase.UPLOADING_FILES)
        descriptors = self.transfer.upload_all(
            files,
            encrypt_key=encrypt_key,
            on_file_stored=on_file_stored,
            on_root_cid_ready=on_root_cid_ready,
            on_stored_chunk=on_stored_chunk,
            owner=owner,
        )

        receipt = self.index.commit(
            owner,
            descriptors,
            current.index,
            old_root_id=current.root_id,
            on_phase=on_phase,
        )

        return StoreResult(
            owner=owner,
            root_id=receipt.root_id,
            previous_root_id=receipt.previous_root_id,
            descriptors=descriptors,
            cleanup_error=str(receipt.cleanup_error) if receipt.cleanup_error else None,
        )

    def load_files(
        self,
        owner: str,
        decrypt_key: Optional[KeyText] = None,
    ) -> list[StoredFile]:
        """Fetch every retrievable file in ``owner``'s current root."""
        return self.transfer.download_all(self.index.resolve_index(owner), decrypt_key)

    def list_files(self, owner: str) -> RootIndex:
        """``owner``'s current index, newest first."""
        return self.index.resolve_index(owner)

    def resolve(self, owner: str) -> IndexResolution:
        """Detailed view of ``owner``'s current root."""
        return self.index.resolve(owner)

    def current_root(self, owner: str) -> str:
        """The committed pointer for ``owner`` ("" when unset)."""
        return self.ledger.read(owner)
