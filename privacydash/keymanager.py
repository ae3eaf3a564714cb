"""
Owner of the single vault master key.

The key is created lazily on first use and persisted in its exported JWK form under a
fixed slot label. Reset is a hard delete: every ciphertext produced before it becomes
permanently unreadable on this client.
"""

import json
import logging
from typing import Dict

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from . import config, crypto, errors
from .slots import SlotStore

logger = logging.getLogger(__name__)


def _serialize_key(key: bytes) -> str:
    jwk = {
        "kty": "oct",
        "k": crypto.b64e(key).rstrip("="),
        "alg": "A256GCM",
        "ext": True,
        "key_ops": ["encrypt", "decrypt"],
    }
    return json.dumps(jwk)


def _deserialize_key(blob: str) -> bytes:
    try:
        jwk: Dict = json.loads(blob)
        if jwk.get("kty") != "oct":
            raise errors.InvalidKeyMaterial("Key export is not a symmetric JWK")
        encoded = jwk["k"]
        key = crypto.b64d(encoded + "=" * (-len(encoded) % 4))
    except (TypeError, ValueError, KeyError, AttributeError) as exc:
        raise errors.InvalidKeyMaterial(f"Key export is malformed: {exc.__class__.__name__}") from exc
    if len(key) != config.KEY_SIZE_BYTES:
        raise errors.InvalidKeyMaterial(f"Expected a {config.KEY_SIZE_BYTES * 8}-bit key")
    return key


class VaultKeyManager:
    def __init__(self, slots: SlotStore, label: str = config.MASTER_KEY_SLOT):
        self.slots = slots
        self.label = label

    def _read(self):
        try:
            return self.slots.get(self.label)
        except errors.StorageUnavailable as exc:
            raise errors.KeyStoreUnavailable("key read", str(exc)) from exc

    def _write(self, blob: str) -> None:
        try:
            self.slots.put(self.label, blob)
        except errors.StorageUnavailable as exc:
            raise errors.KeyStoreUnavailable("key write", str(exc)) from exc

    def has_key(self) -> bool:
        return self._read() is not None

    def get_or_create_key(self) -> bytes:
        stored = self._read()
        if stored is not None:
            return _deserialize_key(stored)
        key = AESGCM.generate_key(bit_length=config.KEY_SIZE_BYTES * 8)
        self._write(_serialize_key(key))
        logger.info("Initialized new vault master key")
        return key

    def reset_key(self) -> None:
        """Delete the persisted key. Safe to call when no key exists."""
        try:
            self.slots.delete(self.label)
        except errors.StorageUnavailable as exc:
            raise errors.KeyStoreUnavailable("key reset", str(exc)) from exc
        logger.warning("Vault master key reset; previously encrypted data is no longer readable")

    def export_key(self) -> str:
        """Return the persisted key export verbatim for an owner-initiated backup."""
        stored = self._read()
        if stored is None:
            raise errors.NoKeyInitialized()
        logger.info("Vault master key exported")
        return stored

    def import_key(self, blob: str) -> None:
        """Restore a backup, replacing any current key."""
        _deserialize_key(blob)
        self._write(blob)
        logger.info("Vault master key imported")
