"""
PII Codec

Reversible encryption of patient identity number and phone number.

Format: base64( NONCE:12 | CIPHERTEXT | TAG:16 ), AES-256-GCM.
A fresh random nonce is drawn on every call, so encrypting the same value
twice yields different ciphertexts. Lookups by plaintext therefore decrypt
candidate rows instead of encrypting the query.
"""
import base64
import binascii
import logging
import os
from functools import lru_cache
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ...config import ENCRYPTION_KEY
from .errors import EncryptionConfigError, PIIDecryptionError

logger = logging.getLogger(__name__)

KEY_SIZE = 32  # 256 bits
NONCE_SIZE = 12  # 96 bits (recommended for GCM)


def parse_key(key: Union[str, bytes]) -> bytes:
    """
    Accept a 64-character hex string or a 32-byte raw key.

    Raises EncryptionConfigError for anything else.
    """
    if isinstance(key, bytes):
        raw = key
    else:
        if not key:
            raise EncryptionConfigError("ENCRYPTION_KEY is not set")
        if len(key) == KEY_SIZE * 2:
            try:
                raw = binascii.unhexlify(key)
            except (binascii.Error, ValueError):
                raise EncryptionConfigError("ENCRYPTION_KEY is not valid hex")
        else:
            raw = key.encode("utf-8")

    if len(raw) != KEY_SIZE:
        raise EncryptionConfigError(f"ENCRYPTION_KEY must be {KEY_SIZE} bytes long")
    return raw


class PIICodec:
    """AES-256-GCM codec bound to one key."""

    def __init__(self, key: Union[str, bytes]):
        self._aesgcm = AESGCM(parse_key(key))

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            data = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError):
            raise PIIDecryptionError("Ciphertext is not valid base64")

        if len(data) < NONCE_SIZE:
            raise PIIDecryptionError("Ciphertext too short")

        nonce, sealed = data[:NONCE_SIZE], data[NONCE_SIZE:]
        try:
            return self._aesgcm.decrypt(nonce, sealed, None).decode("utf-8")
        except InvalidTag:
            raise PIIDecryptionError("Ciphertext failed authentication")

    def decrypt_optional(self, ciphertext):
        """Decrypt a nullable column; empty stays None."""
        if not ciphertext:
            return None
        return self.decrypt(ciphertext)


def encrypt(plaintext: str, key: Union[str, bytes]) -> str:
    return PIICodec(key).encrypt(plaintext)


def decrypt(ciphertext: str, key: Union[str, bytes]) -> str:
    return PIICodec(key).decrypt(ciphertext)


@lru_cache(maxsize=1)
def get_pii_codec() -> PIICodec:
    """
    Process-wide codec built from ENCRYPTION_KEY.

    Called during application startup so a missing or malformed key stops
    the service before it accepts a request.
    """
    codec = PIICodec(ENCRYPTION_KEY)
    logger.info("PII codec initialized")
    return codec
