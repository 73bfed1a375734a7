# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Symmetric encryption of document payloads.

Payloads are serialized to compact JSON and encrypted with AES-256 in CBC
mode. The key is the SHA-256 digest of the caller's secret and every call to
``encrypt`` draws a fresh random 128-bit IV. Both the IV and the ciphertext
are stored hex-encoded.

There is no authentication tag: a modified ciphertext is not detected and
only structurally invalid input (bad hex, bad IV length, bad padding) fails
to decrypt.
"""

import hashlib
import json
import os
from dataclasses import dataclass
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .exceptions import PayloadDecryptionError

KEY_SIZE_BYTES = 32
IV_SIZE_BYTES = 16


@dataclass(frozen=True)
class EncryptedPayload:
    """Hex-encoded IV and ciphertext as persisted in a document."""

    iv: str
    data: str

    def to_fields(self) -> dict[str, str]:
        return {"iv": self.iv, "data": self.data}


def derive_key(secret: str) -> bytes:
    """Derive the AES-256 key from a secret string."""
    return hashlib.sha256(secret.encode("utf-8")).digest()[:KEY_SIZE_BYTES]


class PayloadCodec:
    """Encrypts and decrypts JSON payloads with a caller-supplied secret."""

    def encode_payload(self, payload: Any) -> str:
        """Serialize to compact JSON with non-ASCII characters \\u-escaped.

        Escaping keeps lone surrogates encodable as UTF-8.
        """
        return json.dumps(payload, separators=(",", ":"))

    def decode_payload(self, text: str) -> Any:
        return json.loads(text)

    def encrypt(self, plaintext: str, secret: str) -> EncryptedPayload:
        """Encrypt a string with a key derived from ``secret``.

        Args:
            plaintext: Text to encrypt
            secret: Secret the key is derived from

        Returns:
            EncryptedPayload holding the hex IV and hex ciphertext
        """
        key = derive_key(secret)
        iv = os.urandom(IV_SIZE_BYTES)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return EncryptedPayload(iv=iv.hex(), data=ciphertext.hex())

    def decrypt(self, iv: str, data: str, secret: str) -> str:
        """Decrypt a hex ciphertext with the IV it was encrypted with.

        Args:
            iv: Hex IV produced by ``encrypt``
            data: Hex ciphertext produced by ``encrypt``
            secret: Secret the key is derived from

        Returns:
            Decrypted text

        Raises:
            PayloadDecryptionError: If the input is malformed or the padding
                                    is invalid (e.g. wrong secret)
        """
        key = derive_key(secret)
        try:
            iv_bytes = bytes.fromhex(iv)
            ciphertext = bytes.fromhex(data)

            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv_bytes)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()

            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (TypeError, ValueError) as e:
            raise PayloadDecryptionError(f"Failed to decrypt payload: {e}") from e

    def encrypt_payload(self, payload: Any, secret: str) -> EncryptedPayload:
        """Serialize a payload to JSON and encrypt it."""
        return self.encrypt(self.encode_payload(payload), secret)

    def decrypt_payload(self, iv: str, data: str, secret: str) -> Any:
        """Decrypt a stored payload and parse its JSON.

        Raises:
            PayloadDecryptionError: If decryption fails or the plaintext is not JSON
        """
        text = self.decrypt(iv, data, secret)
        try:
            return self.decode_payload(text)
        except ValueError as e:
            raise PayloadDecryptionError(f"Decrypted payload is not valid JSON: {e}") from e
