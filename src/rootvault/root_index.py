"""
Root index manager -- the versioned root protocol.

    commit:  prepend new descriptors -> serialize -> upload root blob
             -> submit pointer update -> wait for finality
             -> delete the superseded root (best-effort)

    resolve: read pointer -> fetch root blob -> parse

The root blob is uploaded before the pointer moves. If the pointer
transaction fails, the blob stays behind as an orphan; it is logged
with its identifier so a later sweep can find it. Nothing is rolled
back and nothing is retried.

There is no compare-and-swap against the previous pointer. Two writers
for the same owner can overwrite each other; callers serialize writes
per owner.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from pydantic import ValidationError

from .errors import CommitFailed, CorruptIndex, DeleteIgnored, IndexUnavailable
from .ledger import PointerLedger
from .models import (
    FileDescriptor,
    IndexResolution,
    IndexStatus,
    RootIndex,
    StoredFile,
    StorePhase,
)
from .store import ChunkCallback, ContentStore, RootCidCallback

logger = logging.getLogger("rootvault.root_index")

PhaseCallback = Callable[[StorePhase], None]


def serialize_index(index: RootIndex) -> bytes:
    """Canonical bytes for a root index.

    A JSON array of ``{"contentId", "name", "lastModified"}`` objects in
    index order, compact separators, UTF-8.
    """
    return json.dumps(
        [d.to_record() for d in index],
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def parse_index(blob: bytes) -> RootIndex:
    """Parse root index bytes.

    Raises:
        ValueError: If the bytes are not a list of descriptors.
    """
    try:
        records = json.loads(blob.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise ValueError(f"root index is not UTF-8: {exc}") from exc
    if not isinstance(records, list):
        raise ValueError(f"root index must be a JSON array, got {type(records).__name__}")
    try:
        return [FileDescriptor.model_validate(r) for r in records]
    except ValidationError as exc:
        raise ValueError(f"invalid descriptor in root index: {exc}") from exc


def root_blob_name(owner: str) -> str:
    """File name the root index is stored under."""
    return f"{owner}.json"


@dataclass
class CommitReceipt:
    """Outcome of a successful commit."""

    root_id: str
    previous_root_id: Optional[str] = None
    cleanup_error: Optional[DeleteIgnored] = None


class RootIndexManager:
    """Merges, commits, and resolves an owner's root index.

    Args:
        store: Where index blobs live.
        ledger: Where the per-owner pointer lives.
        strict_index_fetch: Raise ``IndexUnavailable`` instead of
            returning an empty index when the root blob cannot be fetched.
    """

    def __init__(
        self,
        store: ContentStore,
        ledger: PointerLedger,
        strict_index_fetch: bool = False,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.strict_index_fetch = strict_index_fetch

    # -------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------

    def merge_and_commit(
        self,
        owner: str,
        new_descriptors: list[FileDescriptor],
        existing_index: RootIndex,
        old_root_id: Optional[str] = None,
    ) -> str:
        """Prepend, upload, and commit a new root. Returns its identifier.

        Raises:
            CommitFailed: The pointer transaction did not finalize.
        """
        return self.commit(owner, new_descriptors, existing_index, old_root_id).root_id

    def commit(
        self,
        owner: str,
        new_descriptors: list[FileDescriptor],
        existing_index: RootIndex,
        old_root_id: Optional[str] = None,
        on_phase: Optional[PhaseCallback] = None,
        on_root_cid_ready: Optional[RootCidCallback] = None,
        on_stored_chunk: Optional[ChunkCallback] = None,
    ) -> CommitReceipt:
        """Full commit, reporting cleanup outcome and phases.

        Args:
            owner: Whose pointer to move.
            new_descriptors: Files uploaded in this call, input order.
            existing_index: The index currently committed.
            old_root_id: Root blob to retire after a successful commit.
            on_phase: Observer for state transitions.
            on_root_cid_ready: Forwarded to the store for the root upload.
            on_stored_chunk: Forwarded to the store for the root upload.

        Returns:
            CommitReceipt for the new root.

        Raises:
            CommitFailed: The pointer transaction did not finalize.
        """
        notify = on_phase or (lambda phase: None)

        updated = list(new_descriptors) + list(existing_index)
        blob = serialize_index(updated)
        notify(StorePhase.INDEX_SERIALIZED)

        new_root_id = self.store.put(
            [StoredFile(name=root_blob_name(owner), data=blob)],
            on_root_cid_ready=on_root_cid_ready,
            on_stored_chunk=on_stored_chunk,
        )
        notify(StorePhase.ROOT_UPLOADED)
        logger.debug(
            "Root for %s uploaded as %s (%d entries)", owner, new_root_id, len(updated)
        )

        try:
            handle = self.ledger.submit_update(owner, new_root_id)
            receipt = self.ledger.wait_for_finality(handle)
        except Exception as exc:
            notify(StorePhase.COMMIT_FAILED)
            logger.warning(
                "Pointer update for %s failed; root %s is orphaned: %s",
                owner, new_root_id, exc,
            )
            raise CommitFailed(
                "Pointer update failed", owner=owner, identifier=new_root_id, cause=exc
            ) from exc

        if not receipt.status:
            notify(StorePhase.COMMIT_FAILED)
            logger.warning(
                "Pointer tx %s for %s did not finalize; root %s is orphaned: %s",
                receipt.tx_id, owner, new_root_id, receipt.error,
            )
            raise CommitFailed(
                f"Pointer transaction {receipt.tx_id} did not finalize"
                + (f" ({receipt.error})" if receipt.error else ""),
                owner=owner,
                identifier=new_root_id,
            )

        notify(StorePhase.COMMITTED)
        logger.info("Committed root %s for %s", new_root_id, owner)

        cleanup_error = None
        if old_root_id and old_root_id != new_root_id:
            cleanup_error = self._retire(owner, old_root_id)
            notify(StorePhase.CLEANUP_ATTEMPTED)

        notify(StorePhase.DONE)
        return CommitReceipt(
            root_id=new_root_id,
            previous_root_id=old_root_id or None,
            cleanup_error=cleanup_error,
        )

    def _retire(self, owner: str, old_root_id: str) -> Optional[DeleteIgnored]:
        """Delete a superseded root. Failures are logged and returned."""
        try:
            self.store.delete(old_root_id)
        except Exception as exc:
            ignored = DeleteIgnored(
                "Could not delete superseded root",
                owner=owner,
                identifier=old_root_id,
                cause=exc,
            )
            logger.warning("%s (owner %s, root %s)", ignored, owner, old_root_id)
            return ignored
        logger.debug("Deleted superseded root %s for %s", old_root_id, owner)
        return None

    # -------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------

    def resolve(self, owner: str) -> IndexResolution:
        """Resolve ``owner``'s pointer into an index, reporting how.

        Raises:
            CorruptIndex: The root blob was fetched but cannot be parsed.
        """
        root_id = self.ledger.read(owner)
        if not root_id:
            return IndexResolution(owner=owner, status=IndexStatus.UNSET)

        try:
            result = self.store.get(root_id)
        except Exception as exc:
            logger.warning("Fetching root %s for %s failed: %s", root_id, owner, exc)
            return IndexResolution(
                owner=owner, status=IndexStatus.UNAVAILABLE, root_id=root_id, error=str(exc)
            )

        if not result.ok:
            logger.warning("Root %s for %s not available", root_id, owner)
            return IndexResolution(
                owner=owner,
                status=IndexStatus.UNAVAILABLE,
                root_id=root_id,
                error="not found",
            )

        if not result.files:
            raise CorruptIndex("Root blob holds no files", owner=owner, identifier=root_id)

        try:
            index = parse_index(result.files[0].data)
        except ValueError as exc:
            raise CorruptIndex(
                "Root blob cannot be parsed", owner=owner, identifier=root_id, cause=exc
            ) from exc

        return IndexResolution(
            owner=owner, status=IndexStatus.LOADED, root_id=root_id, index=index
        )

    def resolve_index(self, owner: str) -> RootIndex:
        """Return ``owner``'s current index.

        An unset pointer gives ``[]``. An unfetchable root gives ``[]``
        too, unless ``strict_index_fetch`` is on.

        Raises:
            CorruptIndex: The root blob cannot be parsed.
            IndexUnavailable: Strict mode and the root blob cannot be fetched.
        """
        resolution = self.resolve(owner)
        if resolution.status == IndexStatus.UNAVAILABLE and self.strict_index_fetch:
            raise IndexUnavailable(
                f"Root index unavailable ({resolution.error})",
                owner=owner,
                identifier=resolution.root_id,
            )
        return resolution.index
