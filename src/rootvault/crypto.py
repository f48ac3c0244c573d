"""
Per-file encryption for a single owner.

Hybrid envelope: a fresh Fernet key (AES-128-CBC + HMAC-SHA256)
encrypts the payload, and that key is wrapped with the owner's RSA
public key (OAEP, SHA-256). Only the matching private key opens it.

Envelope layout (JSON, UTF-8):

    {"v": 1, "alg": "RSA-OAEP-SHA256+Fernet",
     "key": <base64 wrapped Fernet key>, "token": <Fernet token>}

The Fernet plaintext is itself JSON carrying the original file name
and the file bytes as base64, so the name is confidential too and
every byte value survives the round trip unchanged.

Stateless. Keys are PEM strings (or bytes) passed on every call.
"""

from __future__ import annotations

import base64
import json
from typing import NamedTuple, Optional, Union

from .errors import DecryptionFailed
from .models import EncryptedPayload, StoredFile

ENVELOPE_VERSION = 1
ENVELOPE_ALGORITHM = "RSA-OAEP-SHA256+Fernet"

KeyText = Union[str, bytes]


class EncryptedFile(NamedTuple):
    """Decrypted bytes and the name that travelled inside the envelope."""

    data: bytes
    name: str


def _as_bytes(key: KeyText) -> bytes:
    return key.encode("utf-8") if isinstance(key, str) else key


def _oaep():
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.asymmetric import padding

    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


def load_public_key(pem: KeyText):
    """Load an RSA public key from PEM text.

    Raises:
        ValueError: If the PEM is not a usable public key.
    """
    from cryptography.hazmat.primitives.serialization import load_pem_public_key

    return load_pem_public_key(_as_bytes(pem))


def load_private_key(pem: KeyText, password: Optional[bytes] = None):
    """Load an RSA private key from PEM text.

    Raises:
        ValueError: If the PEM is not a usable private key.
    """
    from cryptography.hazmat.primitives.serialization import load_pem_private_key

    return load_pem_private_key(_as_bytes(pem), password=password)


class CryptoAdapter:
    """Encrypts and decrypts file payloads for one key pair at a time.

    Args:
        password: Optional passphrase protecting private key PEMs.
    """

    def __init__(self, password: Optional[bytes] = None) -> None:
        self._password = password

    def encrypt(self, public_key: KeyText, data: bytes, name: str = "") -> bytes:
        """Encrypt ``data`` (and its ``name``) for the holder of ``public_key``.

        Args:
            public_key: Recipient RSA public key, PEM.
            data: Plaintext bytes.
            name: Original file name, sealed inside the envelope.

        Returns:
            Envelope bytes.
        """
        from cryptography.fernet import Fernet

        recipient = load_public_key(public_key)
        file_key = Fernet.generate_key()

        inner = json.dumps(
            {"name": name, "data": base64.b64encode(data).decode("ascii")},
            separators=(",", ":"),
        ).encode("utf-8")

        envelope = {
            "v": ENVELOPE_VERSION,
            "alg": ENVELOPE_ALGORITHM,
            "key": base64.b64encode(recipient.encrypt(file_key, _oaep())).decode("ascii"),
            "token": Fernet(file_key).encrypt(inner).decode("ascii"),
        }
        return json.dumps(envelope, separators=(",", ":")).encode("utf-8")

    def decrypt(self, private_key: KeyText, ciphertext: bytes) -> EncryptedFile:
        """Open an envelope produced by :meth:`encrypt`.

        Args:
            private_key: RSA private key, PEM.
            ciphertext: Envelope bytes.

        Returns:
            EncryptedFile with the original bytes and name.

        Raises:
            DecryptionFailed: Malformed envelope or a key that does not match.
        """
        from cryptography.fernet import Fernet, InvalidToken

        try:
            envelope = json.loads(ciphertext.decode("utf-8"))
            if envelope.get("v") != ENVELOPE_VERSION:
                raise ValueError(f"unsupported envelope version {envelope.get('v')!r}")
            wrapped = base64.b64decode(envelope["key"], validate=True)
            token = envelope["token"].encode("ascii")
        except (UnicodeDecodeError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise DecryptionFailed("Malformed encryption envelope", cause=exc) from exc

        try:
            owner_key = load_private_key(private_key, self._password)
            file_key = owner_key.decrypt(wrapped, _oaep())
            inner = json.loads(Fernet(file_key).decrypt(token))
            return EncryptedFile(
                data=base64.b64decode(inner["data"], validate=True),
                name=inner.get("name", ""),
            )
        except (InvalidToken, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise DecryptionFailed("Could not decrypt payload", cause=exc) from exc

    def encrypt_file(self, public_key: KeyText, file: StoredFile) -> EncryptedPayload:
        """Encrypt a whole named file."""
        return EncryptedPayload(
            name=file.name,
            ciphertext=self.encrypt(public_key, file.data, name=file.name),
        )

    def decrypt_file(
        self,
        private_key: KeyText,
        payload: Union[EncryptedPayload, StoredFile, bytes],
    ) -> StoredFile:
        """Decrypt a payload back into a named file.

        The name comes from inside the envelope, not from whatever name
        the payload was stored under.
        """
        if isinstance(payload, EncryptedPayload):
            raw = payload.ciphertext
        elif isinstance(payload, StoredFile):
            raw = payload.data
        else:
            raw = payload
        opened = self.decrypt(private_key, raw)
        return StoredFile(name=opened.name, data=opened.data)
