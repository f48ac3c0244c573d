"""
Pointer ledger adapters -- one mutable string slot per owner.

An update is a transaction: submit it, then wait for finality. Until
a transaction is final, ``read`` keeps returning the old value. A
transaction that fails finality leaves the slot untouched.

Memory: a dict. For tests and embedding.
Local: one JSON slot file per owner plus an append-only journal.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path

from .errors import LedgerError
from .models import TxHandle, TxReceipt

logger = logging.getLogger("rootvault.ledger")

_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]")


class PointerLedger(ABC):
    """Abstract per-owner pointer ledger."""

    @abstractmethod
    def read(self, owner: str) -> str:
        """Return the finalized pointer for ``owner`` ("" when unset)."""

    @abstractmethod
    def submit_update(self, owner: str, value: str) -> TxHandle:
        """Submit a pointer update. Has no visible effect until final.

        Raises:
            LedgerError: If the ledger refuses the submission.
        """

    @abstractmethod
    def wait_for_finality(self, handle: TxHandle) -> TxReceipt:
        """Block until ``handle`` is final and report its status."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable ledger name."""


class _PendingLedger(PointerLedger):
    """Shared bookkeeping for ledgers that finalize in-process."""

    def __init__(self) -> None:
        self._pending: dict[str, TxHandle] = {}

    def submit_update(self, owner: str, value: str) -> TxHandle:
        if not owner:
            raise LedgerError("Owner must not be empty")
        handle = TxHandle(
            tx_id=uuid.uuid4().hex,
            owner=owner,
            value=value,
            submitted_at=datetime.now(timezone.utc),
        )
        self._pending[handle.tx_id] = handle
        logger.debug("Submitted tx %s for %s", handle.tx_id, owner)
        return handle

    def wait_for_finality(self, handle: TxHandle) -> TxReceipt:
        pending = self._pending.pop(handle.tx_id, None)
        if pending is None:
            return TxReceipt(tx_id=handle.tx_id, status=False, error="unknown transaction")
        try:
            self._apply(pending)
        except OSError as exc:
            logger.error("Ledger tx %s failed to finalize: %s", handle.tx_id, exc)
            return TxReceipt(tx_id=handle.tx_id, status=False, error=str(exc))
        return TxReceipt(tx_id=handle.tx_id, status=True)

    @abstractmethod
    def _apply(self, handle: TxHandle) -> None:
        """Make a transaction's effect durable and visible."""


class MemoryPointerLedger(_PendingLedger):
    """In-process ledger."""

    def __init__(self) -> None:
        super().__init__()
        self._slots: dict[str, str] = {}
        self.history: list[TxHandle] = []

    @property
    def name(self) -> str:
        return "memory"

    def read(self, owner: str) -> str:
        return self._slots.get(owner, "")

    def _apply(self, handle: TxHandle) -> None:
        self._slots[handle.owner] = handle.value
        self.history.append(handle)


class LocalPointerLedger(_PendingLedger):
    """Filesystem ledger.

    Layout:
        <root>/slots/<owner>.json   # current value, replaced atomically
        <root>/journal.jsonl        # every finalized transaction
    """

    def __init__(self, root: Path) -> None:
        super().__init__()
        self.root = Path(root).expanduser()
        self.slots_dir = self.root / "slots"
        self.journal = self.root / "journal.jsonl"
        self.slots_dir.mkdir(parents=True, exist_ok=True)

    @property
    def name(self) -> str:
        return "local"

    def _slot_path(self, owner: str) -> Path:
        safe = _SAFE_NAME.sub("_", owner)
        if safe != owner:
            safe = f"{safe}-{hashlib.sha256(owner.encode('utf-8')).hexdigest()[:12]}"
        return self.slots_dir / f"{safe}.json"

    def read(self, owner: str) -> str:
        slot = self._slot_path(owner)
        if not slot.exists():
            return ""
        try:
            data = json.loads(slot.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise LedgerError("Ledger slot unreadable", owner=owner, cause=exc) from exc
        return data.get("value", "")

    def _apply(self, handle: TxHandle) -> None:
        record = {
            "owner": handle.owner,
            "value": handle.value,
            "tx_id": handle.tx_id,
            "finalized_at": datetime.now(timezone.utc).isoformat(),
        }
        slot = self._slot_path(handle.owner)
        tmp = slot.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(record, indent=2), encoding="utf-8")
        os.replace(tmp, slot)

        with open(self.journal, "a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")

    def entries(self, owner: str) -> list[dict]:
        """Finalized transactions for ``owner``, oldest first."""
        if not self.journal.exists():
            return []
        out = []
        for line in self.journal.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping malformed journal line")
                continue
            if record.get("owner") == owner:
                out.append(record)
        return out
