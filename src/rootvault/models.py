"""
Pydantic models for the root protocol.

A descriptor names one stored, encrypted file. A root index is an
ordered list of descriptors, newest first. The pointer naming the
current root lives on the ledger and is just a string.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FileDescriptor(BaseModel):
    """One stored file, as recorded in a root index.

    Immutable. Serialized with camelCase keys in a fixed order so the
    index blob is canonical.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    content_id: str = Field(alias="contentId")
    name: str
    last_modified: int = Field(alias="lastModified", description="Epoch milliseconds")

    def to_record(self) -> dict:
        """Return the canonical mapping written into the index blob."""
        return self.model_dump(by_alias=True)


RootIndex = list[FileDescriptor]


class StoredFile(BaseModel):
    """A named blob, as handed to or returned by the content store."""

    name: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class EncryptedPayload(BaseModel):
    """Ciphertext plus the original file name it was produced from."""

    name: str
    ciphertext: bytes


class FetchResult(BaseModel):
    """Outcome of a content store ``get``.

    ``ok`` is False for not-found and for transient failures alike.
    """

    ok: bool
    files: list[StoredFile] = Field(default_factory=list)


class TxHandle(BaseModel):
    """A submitted, not yet final, pointer update."""

    tx_id: str
    owner: str
    value: str
    submitted_at: datetime


class TxReceipt(BaseModel):
    """Finality report for a pointer update."""

    tx_id: str
    status: bool
    error: Optional[str] = None


class IndexStatus(str, Enum):
    """What resolving an owner's pointer found."""

    UNSET = "unset"
    LOADED = "loaded"
    UNAVAILABLE = "unavailable"


class IndexResolution(BaseModel):
    """Result of resolving an owner's current root.

    Tells an owner who never uploaded (``UNSET``) apart from one whose
    root blob could not be fetched (``UNAVAILABLE``).
    """

    owner: str
    status: IndexStatus
    root_id: Optional[str] = None
    index: list[FileDescriptor] = Field(default_factory=list)
    error: Optional[str] = None


class StorePhase(str, Enum):
    """Phases of a single ``store_files`` call."""

    START = "start"
    UPLOADING_FILES = "uploading_files"
    INDEX_SERIALIZED = "index_serialized"
    ROOT_UPLOADED = "root_uploaded"
    COMMITTED = "committed"
    COMMIT_FAILED = "commit_failed"
    CLEANUP_ATTEMPTED = "cleanup_attempted"
    DONE = "done"


class StoreResult(BaseModel):
    """What a successful ``store_files`` call produced."""

    owner: str
    root_id: str
    previous_root_id: Optional[str] = None
    descriptors: list[FileDescriptor] = Field(default_factory=list)
    cleanup_error: Optional[str] = None

    @property
    def uploaded_ids(self) -> list[str]:
        """Content identifiers of the files uploaded in this call."""
        return [d.content_id for d in self.descriptors]
