import base64
import json
import logging
import os
from typing import Any, Optional, Tuple

from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives.asymmetric import ed25519
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import ValidationError

from . import config
from .errors import DecryptionFailed
from .schemas import PrivateInvoiceData

logger = logging.getLogger(__name__)

TAG_SIZE_BYTES = 16


def b64e(data: bytes) -> str:
    """URL-safe base64 encoding without newlines."""
    return base64.urlsafe_b64encode(data).decode("ascii")


def b64d(data: str) -> bytes:
    """URL-safe base64 decoding from string."""
    return base64.urlsafe_b64decode(data.encode("ascii"))


def encrypt_aes_gcm(key: bytes, plaintext: bytes, associated_data: bytes | None = None) -> Tuple[bytes, bytes, bytes]:
    """Encrypt using AES-GCM with a fresh random nonce. Returns (ciphertext, tag, nonce)."""
    nonce = os.urandom(config.NONCE_SIZE_BYTES)
    aesgcm = AESGCM(key)
    ct_with_tag = aesgcm.encrypt(nonce, plaintext, associated_data)
    ciphertext, tag = ct_with_tag[:-TAG_SIZE_BYTES], ct_with_tag[-TAG_SIZE_BYTES:]
    return ciphertext, tag, nonce


def decrypt_aes_gcm(key: bytes, ciphertext: bytes, tag: bytes, nonce: bytes, associated_data: bytes | None = None) -> bytes:
    """Decrypt using AES-GCM and verify tag."""
    aesgcm = AESGCM(key)
    return aesgcm.decrypt(nonce, ciphertext + tag, associated_data)


def verify_wallet_signature(public_key: bytes, message: bytes, signature: bytes) -> bool:
    """Verify an Ed25519 wallet signature. Returns True when valid, False otherwise."""
    try:
        ed25519.Ed25519PublicKey.from_public_bytes(public_key).verify(signature, message)
        return True
    except (InvalidSignature, ValueError):
        return False


class Cipher:
    """
    Authenticated encryption of JSON payloads under the vault master key.

    Blob layout is ``nonce || ciphertext || tag``, base64 encoded. The key is fetched
    from the key manager on every call so a reset takes effect immediately.
    """

    def __init__(self, key_manager):
        self.key_manager = key_manager

    def encrypt(self, data: Any) -> str:
        key = self.key_manager.get_or_create_key()
        payload = json.dumps(data, separators=(",", ":")).encode("utf-8")
        ciphertext, tag, nonce = encrypt_aes_gcm(key, payload)
        return b64e(nonce + ciphertext + tag)

    def decrypt(self, blob: str) -> Any:
        """
        Recover the JSON payload of a blob.
        Raises DecryptionFailed for a wrong key, a tampered or truncated blob, or a malformed payload.
        Storage errors from the key manager propagate unchanged.
        """
        key = self.key_manager.get_or_create_key()
        try:
            raw = b64d(blob)
        except (AttributeError, TypeError, ValueError) as exc:
            raise DecryptionFailed("blob is not valid base64") from exc
        if len(raw) < config.NONCE_SIZE_BYTES + TAG_SIZE_BYTES:
            raise DecryptionFailed("blob is too short")
        nonce, body = raw[: config.NONCE_SIZE_BYTES], raw[config.NONCE_SIZE_BYTES :]
        try:
            plaintext = decrypt_aes_gcm(key, body[:-TAG_SIZE_BYTES], body[-TAG_SIZE_BYTES:], nonce)
        except InvalidTag as exc:
            raise DecryptionFailed() from exc
        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DecryptionFailed("decrypted payload is not JSON") from exc

    def try_decrypt(self, blob: str) -> Optional[Any]:
        try:
            return self.decrypt(blob)
        except DecryptionFailed as exc:
            logger.warning("Decryption failed: %s", exc.reason)
            return None

    def seal_invoice(self, invoice: PrivateInvoiceData | dict) -> str:
        if not isinstance(invoice, PrivateInvoiceData):
            invoice = PrivateInvoiceData.model_validate(invoice)
        return self.encrypt(invoice.model_dump(mode="json"))

    def open_invoice(self, blob: str) -> Optional[PrivateInvoiceData]:
        data = self.try_decrypt(blob)
        if data is None:
            return None
        try:
            return PrivateInvoiceData.model_validate(data)
        except ValidationError:
            logger.warning("Decrypted payload is not a valid invoice")
            return None
