"""
Content store adapters -- where the blobs live.

A store takes one or more named blobs as a single unit and hands back
one identifier for the unit. Identifiers are opaque to the rest of the
system.

Memory: a dict. For tests and embedding.
Local: a directory per unit, named by its SHA-256. For a single machine.
IPFS: a Kubo node over its HTTP RPC API. The real content-addressed case.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional

import requests

from .errors import ContentStoreError
from .models import FetchResult, StoredFile

logger = logging.getLogger("rootvault.store")

RootCidCallback = Callable[[str], None]
ChunkCallback = Callable[[int], None]

_UNIT_ID_RE = re.compile(r"[0-9a-f]{64}")


def unit_id(files: list[StoredFile]) -> str:
    """SHA-256 over a unit's names and bytes, in order.

    Args:
        files: The files making up the unit.

    Returns:
        Hex-encoded digest.
    """
    h = hashlib.sha256()
    for f in files:
        name = f.name.encode("utf-8")
        h.update(len(name).to_bytes(4, "big"))
        h.update(name)
        h.update(len(f.data).to_bytes(8, "big"))
        h.update(f.data)
    return h.hexdigest()


def is_unit_id(identifier: str) -> bool:
    """True if ``identifier`` has the shape :func:`unit_id` produces."""
    return isinstance(identifier, str) and _UNIT_ID_RE.fullmatch(identifier) is not None


class ContentStore(ABC):
    """Abstract content-addressed blob store."""

    @abstractmethod
    def put(
        self,
        files: list[StoredFile],
        on_root_cid_ready: Optional[RootCidCallback] = None,
        on_stored_chunk: Optional[ChunkCallback] = None,
    ) -> str:
        """Store ``files`` as one unit.

        Args:
            files: Named blobs to store together.
            on_root_cid_ready: Called with the unit identifier once known.
            on_stored_chunk: Called with a byte count as data is stored.

        Returns:
            The unit identifier.

        Raises:
            ContentStoreError: If the store rejects the upload.
        """

    @abstractmethod
    def get(self, identifier: str) -> FetchResult:
        """Resolve an identifier back to its files.

        ``ok`` is False for both not-found and transient failure.
        """

    @abstractmethod
    def delete(self, identifier: str) -> None:
        """Drop a unit. Best-effort.

        Raises:
            ContentStoreError: If the store refused the delete.
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable store name."""


class MemoryContentStore(ContentStore):
    """In-process store keyed by :func:`unit_id`."""

    def __init__(self) -> None:
        self._units: dict[str, list[StoredFile]] = {}

    @property
    def name(self) -> str:
        return "memory"

    def put(self, files, on_root_cid_ready=None, on_stored_chunk=None) -> str:
        if not files:
            raise ContentStoreError("Cannot store an empty unit")
        identifier = unit_id(files)
        if on_root_cid_ready:
            on_root_cid_ready(identifier)
        self._units[identifier] = [f.model_copy() for f in files]
        if on_stored_chunk:
            on_stored_chunk(sum(f.size for f in files))
        return identifier

    def get(self, identifier: str) -> FetchResult:
        files = self._units.get(identifier)
        if files is None:
            return FetchResult(ok=False)
        return FetchResult(ok=True, files=[f.model_copy() for f in files])

    def delete(self, identifier: str) -> None:
        self._units.pop(identifier, None)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._units

    def __len__(self) -> int:
        return len(self._units)


class LocalContentStore(ContentStore):
    """Filesystem store: one directory per unit.

    Layout:
        <root>/<unit_id>/unit.json     # ordered file names
        <root>/<unit_id>/000.blob      # file bytes, by position
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()
        self.root.mkdir(parents=True, exist_ok=True)

    @property
    def name(self) -> str:
        return "local"

    def put(self, files, on_root_cid_ready=None, on_stored_chunk=None) -> str:
        if not files:
            raise ContentStoreError("Cannot store an empty unit")
        identifier = unit_id(files)
        if on_root_cid_ready:
            on_root_cid_ready(identifier)

        unit_dir = self.root / identifier
        if (unit_dir / "unit.json").exists():
            logger.debug("Unit %s already stored", identifier)
            if on_stored_chunk:
                on_stored_chunk(sum(f.size for f in files))
            return identifier

        staging = self.root / f".{identifier}.tmp"
        try:
            staging.mkdir(parents=True, exist_ok=True)
            for i, f in enumerate(files):
                (staging / f"{i:03d}.blob").write_bytes(f.data)
                if on_stored_chunk:
                    on_stored_chunk(f.size)
            (staging / "unit.json").write_text(
                json.dumps([f.name for f in files]), encoding="utf-8"
            )
            os.replace(staging, unit_dir)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise ContentStoreError(
                "Local store write failed", identifier=identifier, cause=exc
            ) from exc

        logger.debug("Stored unit %s (%d file(s))", identifier, len(files))
        return identifier

    def _unit_dir(self, identifier: str) -> Optional[Path]:
        """Directory for ``identifier``, or None if it is not a unit id.

        Identifiers can come back from the ledger, so they are never
        trusted as path segments.
        """
        if not is_unit_id(identifier):
            return None
        unit_dir = (self.root / identifier).resolve()
        if unit_dir.parent != self.root.resolve():
            return None
        return unit_dir

    def get(self, identifier: str) -> FetchResult:
        unit_dir = self._unit_dir(identifier)
        if unit_dir is None:
            logger.warning("Rejected malformed unit id %r", identifier)
            return FetchResult(ok=False)
        listing = unit_dir / "unit.json"
        if not listing.exists():
            return FetchResult(ok=False)
        try:
            names = json.loads(listing.read_text(encoding="utf-8"))
            files = [
                StoredFile(name=n, data=(unit_dir / f"{i:03d}.blob").read_bytes())
                for i, n in enumerate(names)
            ]
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Local unit %s unreadable: %s", identifier, exc)
            return FetchResult(ok=False)
        return FetchResult(ok=True, files=files)

    def delete(self, identifier: str) -> None:
        unit_dir = self._unit_dir(identifier)
        if unit_dir is None:
            raise ContentStoreError(
                f"Refusing to delete malformed unit id {identifier!r}",
                identifier=identifier,
            )
        if not unit_dir.is_dir():
            logger.debug("Unit %s already gone", identifier)
            return
        try:
            shutil.rmtree(unit_dir)
        except OSError as exc:
            raise ContentStoreError(
                "Local store delete failed", identifier=identifier, cause=exc
            ) from exc


class IpfsContentStore(ContentStore):
    """IPFS (Kubo) node reached over its HTTP RPC API.

    Units are added with ``wrap-with-directory`` so several files share
    one directory CID. Deletion unpins; the node's GC reclaims the data.

    Args:
        api_url: RPC base, e.g. ``http://127.0.0.1:5001/api/v0``.
        token: Optional bearer token for gateways that require one.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        api_url: str = "http://127.0.0.1:5001/api/v0",
        token: Optional[str] = None,
        timeout: float = 60.0,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self._token = token
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "ipfs"

    def _post(self, endpoint: str, **kwargs) -> requests.Response:
        headers = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return requests.post(
            f"{self.api_url}/{endpoint}",
            headers=headers,
            timeout=self._timeout,
            **kwargs,
        )

    def put(self, files, on_root_cid_ready=None, on_stored_chunk=None) -> str:
        if not files:
            raise ContentStoreError("Cannot store an empty unit")
        multipart = [
            ("file", (f.name, f.data, "application/octet-stream")) for f in files
        ]
        try:
            resp = self._post(
                "add",
                params={"wrap-with-directory": "true", "cid-version": "1", "pin": "true"},
                files=multipart,
            )
        except requests.RequestException as exc:
            raise ContentStoreError("IPFS add request failed", cause=exc) from exc

        if resp.status_code >= 400:
            raise ContentStoreError(f"IPFS add: {resp.status_code} {resp.text}")

        try:
            entries = [json.loads(line) for line in resp.text.splitlines() if line.strip()]
            root = next((e for e in entries if e.get("Name", "") == ""), None)
            if root is None:
                raise ContentStoreError("IPFS add returned no wrapping directory")
            identifier = root["Hash"]
        except (ValueError, KeyError, AttributeError, TypeError) as exc:
            raise ContentStoreError("IPFS add returned a malformed response", cause=exc) from exc

        if on_root_cid_ready:
            on_root_cid_ready(identifier)
        if on_stored_chunk:
            for e in entries:
                if e.get("Name"):
                    on_stored_chunk(int(e.get("Size", 0)))
        logger.debug("IPFS stored unit %s (%d file(s))", identifier, len(files))
        return identifier

    def get(self, identifier: str) -> FetchResult:
        try:
            resp = self._post("ls", params={"arg": identifier})
            if resp.status_code >= 400:
                logger.debug("IPFS ls %s: %s", identifier, resp.status_code)
                return FetchResult(ok=False)
            objects = resp.json().get("Objects", [])
            links = objects[0].get("Links", []) if objects else []

            files = []
            for link in links:
                name = link["Name"]
                cat = self._post("cat", params={"arg": f"{identifier}/{name}"})
                if cat.status_code >= 400:
                    logger.debug("IPFS cat %s/%s: %s", identifier, name, cat.status_code)
                    return FetchResult(ok=False)
                files.append(StoredFile(name=name, data=cat.content))
        except (requests.RequestException, ValueError, KeyError) as exc:
            logger.debug("IPFS get %s failed: %s", identifier, exc)
            return FetchResult(ok=False)

        return FetchResult(ok=bool(files), files=files)

    def delete(self, identifier: str) -> None:
        try:
            resp = self._post("pin/rm", params={"arg": identifier})
        except requests.RequestException as exc:
            raise ContentStoreError(
                "IPFS unpin request failed", identifier=identifier, cause=exc
            ) from exc
        if resp.status_code >= 400:
            raise ContentStoreError(
                f"IPFS pin/rm: {resp.status_code} {resp.text}", identifier=identifier
            )
