"""Shared test fixtures for rootvault."""

from __future__ import annotations

from pathlib import Path

import pytest

from rootvault.client import RootVault
from rootvault.errors import ContentStoreError
from rootvault.ledger import MemoryPointerLedger
from rootvault.models import FetchResult, TxHandle, TxReceipt
from rootvault.store import MemoryContentStore


def _generate_pem_pair() -> tuple[str, str]:
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")
    return public_pem, private_pem


@pytest.fixture(scope="session")
def key_pair() -> tuple[str, str]:
    """An RSA key pair as (public PEM, private PEM)."""
    return _generate_pem_pair()


@pytest.fixture(scope="session")
def other_key_pair() -> tuple[str, str]:
    """A second, unrelated key pair."""
    return _generate_pem_pair()


class FaultyStore(MemoryContentStore):
    """Memory store with switchable failures."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_put_names: set[str] = set()
        self.fail_get_ids: set[str] = set()
        self.raise_get_ids: set[str] = set()
        self.fail_delete = False
        self.deleted: list[str] = []

    def put(self, files, on_root_cid_ready=None, on_stored_chunk=None) -> str:
        if any(f.name in self.fail_put_names for f in files):
            raise ContentStoreError(f"refused {[f.name for f in files]}")
        return super().put(files, on_root_cid_ready, on_stored_chunk)

    def get(self, identifier: str) -> FetchResult:
        if identifier in self.raise_get_ids:
            raise ConnectionError(f"gateway timeout for {identifier}")
        if identifier in self.fail_get_ids:
            return FetchResult(ok=False)
        return super().get(identifier)

    def delete(self, identifier: str) -> None:
        if self.fail_delete:
            raise ContentStoreError("delete refused", identifier=identifier)
        self.deleted.append(identifier)
        super().delete(identifier)


class RevertingLedger(MemoryPointerLedger):
    """Memory ledger whose transactions can be made to revert."""

    def __init__(self) -> None:
        super().__init__()
        self.revert = False
        self.raise_on_submit = False

    def submit_update(self, owner: str, value: str) -> TxHandle:
        if self.raise_on_submit:
            raise ConnectionError("ledger node unreachable")
        return super().submit_update(owner, value)

    def wait_for_finality(self, handle: TxHandle) -> TxReceipt:
        if self.revert:
            self._pending.pop(handle.tx_id, None)
            return TxReceipt(tx_id=handle.tx_id, status=False, error="reverted")
        return super().wait_for_finality(handle)


@pytest.fixture
def store() -> FaultyStore:
    return FaultyStore()


@pytest.fixture
def ledger() -> RevertingLedger:
    return RevertingLedger()


@pytest.fixture
def vault(store: FaultyStore, ledger: RevertingLedger) -> RootVault:
    """A vault over in-memory adapters with failure switches."""
    return RootVault(store, ledger)


@pytest.fixture
def vault_home(tmp_path: Path) -> Path:
    """An empty vault home directory."""
    home = tmp_path / ".rootvault"
    home.mkdir()
    return home
