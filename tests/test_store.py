"""Tests for the content store adapters."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from rootvault.errors import ContentStoreError
from rootvault.ledger import LocalPointerLedger
from rootvault.models import StoredFile
from rootvault.store import (
    IpfsContentStore,
    LocalContentStore,
    MemoryContentStore,
    unit_id,
)


def _files(*pairs: tuple[str, bytes]) -> list[StoredFile]:
    return [StoredFile(name=n, data=d) for n, d in pairs]


class TestUnitId:
    """Tests for unit identifiers."""

    def test_deterministic(self):
        assert unit_id(_files(("a", b"1"))) == unit_id(_files(("a", b"1")))

    def test_name_matters(self):
        assert unit_id(_files(("a", b"1"))) != unit_id(_files(("b", b"1")))

    def test_boundaries_are_unambiguous(self):
        """Moving bytes between name and data changes the id."""
        assert unit_id(_files(("ab", b"c"))) != unit_id(_files(("a", b"bc")))

    def test_sha256_hex(self):
        assert len(unit_id(_files(("a", b"")))) == 64


class TestStoreContract:
    """Behaviour shared by the memory and local stores."""

    @pytest.fixture(params=["memory", "local"])
    def store(self, request, tmp_path: Path):
        if request.param == "memory":
            return MemoryContentStore()
        return LocalContentStore(tmp_path / "store")

    def test_put_get(self, store):
        cid = store.put(_files(("a.txt", b"\x00\xffA"), ("b.txt", b"B")))
        result = store.get(cid)
        assert result.ok
        assert [(f.name, f.data) for f in result.files] == [
            ("a.txt", b"\x00\xffA"),
            ("b.txt", b"B"),
        ]

    def test_get_missing(self, store):
        result = store.get("0" * 64)
        assert result.ok is False
        assert result.files == []

    def test_delete(self, store):
        cid = store.put(_files(("a", b"1")))
        store.delete(cid)
        assert store.get(cid).ok is False

    def test_delete_missing_is_quiet(self, store):
        store.delete("f" * 64)

    def test_empty_unit_rejected(self, store):
        with pytest.raises(ContentStoreError):
            store.put([])

    def test_callbacks(self, store):
        seen_cids, sizes = [], []
        cid = store.put(
            _files(("a", b"12345")),
            on_root_cid_ready=seen_cids.append,
            on_stored_chunk=sizes.append,
        )
        assert seen_cids == [cid]
        assert sum(sizes) == 5

    def test_identical_content_shares_id(self, store):
        assert store.put(_files(("a", b"1"))) == store.put(_files(("a", b"1")))


class TestLocalStore:
    """Tests specific to the filesystem store."""

    def test_persists_across_instances(self, tmp_path: Path):
        cid = LocalContentStore(tmp_path).put(_files(("a", b"persisted")))
        result = LocalContentStore(tmp_path).get(cid)
        assert result.files[0].data == b"persisted"

    def test_layout(self, tmp_path: Path):
        cid = LocalContentStore(tmp_path).put(_files(("x/y.txt", b"1")))
        unit = tmp_path / cid
        assert json.loads((unit / "unit.json").read_text()) == ["x/y.txt"]
        assert (unit / "000.blob").read_bytes() == b"1"

    def test_unreadable_unit_not_ok(self, tmp_path: Path):
        store = LocalContentStore(tmp_path)
        cid = store.put(_files(("a", b"1")))
        (tmp_path / cid / "unit.json").write_text("{broken")
        assert store.get(cid).ok is False

    @pytest.mark.parametrize("bad_id", ["../../victim", "..", "/etc", "ABC", "f" * 63])
    def test_malformed_id_not_fetched(self, tmp_path: Path, bad_id):
        assert LocalContentStore(tmp_path / "store").get(bad_id).ok is False

    def test_pointer_cannot_escape_store_root(self, tmp_path: Path):
        """A ledger value shaped like a path never reaches outside the store."""
        victim = tmp_path / "victim"
        victim.mkdir()
        (victim / "keep.txt").write_text("precious")
        store = LocalContentStore(tmp_path / "a" / "store")
        ledger = LocalPointerLedger(tmp_path / "ledger")
        ledger.wait_for_finality(ledger.submit_update("alice", "../../victim"))

        with pytest.raises(ContentStoreError, match="malformed"):
            store.delete(ledger.read("alice"))
        assert (victim / "keep.txt").read_text() == "precious"


def _response(status: int = 200, text: str = "", content: bytes = b"", payload=None):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.content = content
    resp.json.return_value = payload
    return resp


class TestIpfsStore:
    """Tests for the Kubo RPC store with requests mocked out."""

    API = "http://ipfs.test:5001/api/v0"

    def test_put_returns_wrapping_directory(self):
        lines = "\n".join([
            json.dumps({"Name": "a.txt", "Hash": "bafyfile", "Size": "7"}),
            json.dumps({"Name": "", "Hash": "bafydir", "Size": "60"}),
        ])
        store = IpfsContentStore(self.API, token="secret")
        sizes = []
        with patch("rootvault.store.requests.post", return_value=_response(text=lines)) as post:
            cid = store.put(_files(("a.txt", b"payload")), on_stored_chunk=sizes.append)

        assert cid == "bafydir"
        assert sizes == [7]
        args, kwargs = post.call_args
        assert args[0] == f"{self.API}/add"
        assert kwargs["params"]["wrap-with-directory"] == "true"
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["files"][0][1][0] == "a.txt"

    def test_put_error_status(self):
        store = IpfsContentStore(self.API)
        with patch("rootvault.store.requests.post", return_value=_response(500, "boom")):
            with pytest.raises(ContentStoreError, match="500"):
                store.put(_files(("a", b"1")))

    @pytest.mark.parametrize("text", [
        "not json at all",
        json.dumps({"Name": "", "Size": "60"}),
        json.dumps(["unexpected"]),
    ])
    def test_put_malformed_response(self, text):
        store = IpfsContentStore(self.API)
        with patch("rootvault.store.requests.post", return_value=_response(text=text)):
            with pytest.raises(ContentStoreError, match="malformed"):
                store.put(_files(("a", b"1")))

    def test_put_connection_error(self):
        store = IpfsContentStore(self.API)
        with patch(
            "rootvault.store.requests.post",
            side_effect=requests.ConnectionError("refused"),
        ):
            with pytest.raises(ContentStoreError):
                store.put(_files(("a", b"1")))

    def test_get_lists_then_cats(self):
        def fake_post(url, **kwargs):
            if url.endswith("/ls"):
                return _response(payload={
                    "Objects": [{"Hash": "bafydir", "Links": [{"Name": "a.txt", "Hash": "x"}]}]
                })
            assert kwargs["params"]["arg"] == "bafydir/a.txt"
            return _response(content=b"\x00data")

        store = IpfsContentStore(self.API)
        with patch("rootvault.store.requests.post", side_effect=fake_post):
            result = store.get("bafydir")

        assert result.ok
        assert result.files[0].name == "a.txt"
        assert result.files[0].data == b"\x00data"

    def test_get_not_found(self):
        store = IpfsContentStore(self.API)
        with patch("rootvault.store.requests.post", return_value=_response(500, "not found")):
            assert store.get("bafymissing").ok is False

    def test_get_transport_failure_is_not_ok(self):
        store = IpfsContentStore(self.API)
        with patch("rootvault.store.requests.post", side_effect=requests.Timeout("slow")):
            assert store.get("bafyslow").ok is False

    def test_delete_unpins(self):
        store = IpfsContentStore(self.API)
        with patch("rootvault.store.requests.post", return_value=_response()) as post:
            store.delete("bafyold")
        assert post.call_args[0][0] == f"{self.API}/pin/rm"
        assert post.call_args[1]["params"] == {"arg": "bafyold"}

    def test_delete_failure_raises(self):
        store = IpfsContentStore(self.API)
        with patch("rootvault.store.requests.post", return_value=_response(500, "not pinned")):
            with pytest.raises(ContentStoreError):
                store.delete("bafyold")
