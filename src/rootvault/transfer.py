"""
File transfer orchestrator -- per-file encrypt/upload and fetch/decrypt.

Uploads are all-or-nothing: one failure aborts the batch. Downloads
are best-effort: a file that cannot be fetched is logged and skipped
so the rest of a history can still be recovered.

Files are processed one at a time, in input order. ``last_modified``
is stamped as each file is processed and never goes backwards within
a batch.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .crypto import CryptoAdapter, KeyText
from .errors import UploadFailed
from .models import FileDescriptor, StoredFile
from .store import ChunkCallback, ContentStore, RootCidCallback

logger = logging.getLogger("rootvault.transfer")

FileStoredCallback = Callable[[int, FileDescriptor], None]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class FileTransferOrchestrator:
    """Moves an owner's files in and out of the content store.

    Args:
        store: Content store holding the file payloads.
        crypto: Crypto adapter. A default one is created if omitted.
        clock: Millisecond clock used for ``last_modified``.
    """

    def __init__(
        self,
        store: ContentStore,
        crypto: Optional[CryptoAdapter] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.crypto = crypto or CryptoAdapter()
        self._clock = clock

    def upload_all(
        self,
        files: list[StoredFile],
        encrypt_key: Optional[KeyText] = None,
        on_file_stored: Optional[FileStoredCallback] = None,
        on_root_cid_ready: Optional[RootCidCallback] = None,
        on_stored_chunk: Optional[ChunkCallback] = None,
        owner: Optional[str] = None,
    ) -> list[FileDescriptor]:
        """Encrypt (optionally) and upload each file, in order.

        Args:
            files: Files to upload.
            encrypt_key: Owner's public key PEM. None uploads plaintext.
            on_file_stored: Called with (position, descriptor) after each file.
            on_root_cid_ready: Forwarded to the store for each upload.
            on_stored_chunk: Forwarded to the store for each upload.
            owner: Whose files these are. Carried on any UploadFailed.

        Returns:
            One descriptor per file, in input order.

        Raises:
            UploadFailed: Naming the first file that could not be stored.
        """
        descriptors: list[FileDescriptor] = []
        last_stamp = 0

        for i, f in enumerate(files):
            try:
                if encrypt_key is not None:
                    payload = self.crypto.encrypt_file(encrypt_key, f)
                    blob = StoredFile(name=payload.name, data=payload.ciphertext)
                else:
                    blob = f
                content_id = self.store.put(
                    [blob],
                    on_root_cid_ready=on_root_cid_ready,
                    on_stored_chunk=on_stored_chunk,
                )
            except Exception as exc:
                logger.error("Upload of %s failed after %d file(s): %s", f.name, i, exc)
                raise UploadFailed(f.name, i, cause=exc, owner=owner) from exc

            last_stamp = max(last_stamp, self._clock())
            descriptor = FileDescriptor(
                content_id=content_id, name=f.name, last_modified=last_stamp
            )
            descriptors.append(descriptor)
            logger.debug("Stored %s as %s", f.name, content_id)

            if on_file_stored:
                on_file_stored(i, descriptor)

        logger.info(
            "Uploaded %d file(s)%s",
            len(descriptors),
            " encrypted" if encrypt_key is not None else "",
        )
        return descriptors

    def download_all(
        self,
        descriptors: list[FileDescriptor],
        decrypt_key: Optional[KeyText] = None,
    ) -> list[StoredFile]:
        """Fetch (and optionally decrypt) every descriptor that can be fetched.

        Args:
            descriptors: Files to retrieve, usually a root index.
            decrypt_key: Owner's private key PEM. None returns raw payloads.

        Returns:
            Retrieved files, in descriptor order, minus any that failed
            to fetch.

        Raises:
            DecryptionFailed: A fetched payload could not be decrypted.
        """
        out: list[StoredFile] = []

        for d in descriptors:
            try:
                result = self.store.get(d.content_id)
            except Exception as exc:
                logger.warning("Skipping %s (%s): fetch failed: %s", d.name, d.content_id, exc)
                continue
            if not result.ok or not result.files:
                logger.warning("Skipping %s (%s): not available", d.name, d.content_id)
                continue

            payload = result.files[0]
            if decrypt_key is not None:
                out.append(self.crypto.decrypt_file(decrypt_key, payload))
            else:
                out.append(payload)

        if len(out) < len(descriptors):
            logger.info("Retrieved %d of %d file(s)", len(out), len(descriptors))
        return out
