"""
Payload Sealing

Remediation payloads are encrypted before they are handed to the authority.
Sealing failure is never fatal: the engine logs a warning and forwards the
original payload.

Sealed format (AesGcmSealer):

    nonce (12 bytes) || AES-256-GCM ciphertext || tag (16 bytes)

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from secops.automation.errors import SealingError

NONCE_SIZE = 12
KEY_SIZE = 32


class PayloadSealer(ABC):
    """Encrypts payloads before they cross into the authority."""

    @abstractmethod
    def seal(self, data: bytes) -> bytes:
        """Return the sealed payload. Raises SealingError on failure."""


class NullSealer(PayloadSealer):
    """Identity sealer, used when sealing is disabled."""

    def seal(self, data: bytes) -> bytes:
        return data


class AesGcmSealer(PayloadSealer):
    """
    AES-256-GCM sealer.

    ``associated_data`` is bound into every tag, typically the protocol name,
    so a payload sealed for one protocol will not open under another.
    """

    def __init__(self, key: bytes, associated_data: Optional[bytes] = None):
        if len(key) != KEY_SIZE:
            raise SealingError(f"AES-256-GCM requires a {KEY_SIZE}-byte key, got {len(key)}")
        self._aead = AESGCM(key)
        self.associated_data = associated_data

    @classmethod
    def from_hex(cls, key_hex: str, associated_data: Optional[bytes] = None) -> "AesGcmSealer":
        try:
            key = bytes.fromhex(key_hex)
        except ValueError as e:
            raise SealingError(f"Sealer key is not valid hex: {e}") from e
        return cls(key, associated_data)

    @staticmethod
    def generate_key() -> bytes:
        return AESGCM.generate_key(bit_length=KEY_SIZE * 8)

    def seal(self, data: bytes) -> bytes:
        if not isinstance(data, (bytes, bytearray)):
            raise SealingError(f"Cannot seal payload of type {type(data).__name__}")
        nonce = os.urandom(NONCE_SIZE)
        try:
            return nonce + self._aead.encrypt(nonce, bytes(data), self.associated_data)
        except (OverflowError, ValueError) as e:
            raise SealingError(f"Sealing failed: {e}") from e

    def unseal(self, sealed: bytes) -> bytes:
        if len(sealed) < NONCE_SIZE:
            raise SealingError("Sealed payload shorter than nonce")
        nonce, ciphertext = sealed[:NONCE_SIZE], sealed[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, ciphertext, self.associated_data)
        except InvalidTag as e:
            raise SealingError("Sealed payload failed authentication") from e
