"""Copilot workspace token codec.

Tokens are hex strings holding a 16-byte IV followed by the AES-128-CBC
ciphertext of a JSON payload such as ``{"workspaceId": "..."}``. The key is
the first 16 bytes of HMAC-SHA256 over the Copilot API key.
"""

from __future__ import annotations

import json
import os
from typing import Any

from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

_IV_BYTES = 16


class InvalidTokenError(ValueError):
    """Token is not valid hex, was encrypted with another key, or is not JSON."""


def _derive_key(api_key: str) -> bytes:
    mac = hmac.HMAC(api_key.encode("utf-8"), hashes.SHA256())
    return mac.finalize()[:16]


def encode_workspace_token(api_key: str, payload: dict[str, Any]) -> str:
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    plaintext = padder.update(json.dumps(payload).encode("utf-8")) + padder.finalize()
    iv = os.urandom(_IV_BYTES)
    encryptor = Cipher(algorithms.AES(_derive_key(api_key)), modes.CBC(iv)).encryptor()
    return (iv + encryptor.update(plaintext) + encryptor.finalize()).hex()


def decode_workspace_token(api_key: str, token: str) -> dict[str, Any]:
    try:
        raw = bytes.fromhex(token)
    except ValueError as exc:
        raise InvalidTokenError("Token is not hex encoded") from exc
    if len(raw) <= _IV_BYTES or (len(raw) - _IV_BYTES) % 16:
        raise InvalidTokenError("Token has an invalid length")

    iv, ciphertext = raw[:_IV_BYTES], raw[_IV_BYTES:]
    decryptor = Cipher(algorithms.AES(_derive_key(api_key)), modes.CBC(iv)).decryptor()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        payload = json.loads(plaintext.decode("utf-8"))
    except ValueError as exc:
        raise InvalidTokenError("Token could not be decrypted") from exc
    if not isinstance(payload, dict):
        raise InvalidTokenError("Token payload is not an object")
    return payload
