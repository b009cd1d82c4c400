"""AES-256-GCM encryption for agency integration credentials.

Stored format: "<iv_b64>:<ciphertext_b64>" where the plaintext is a JSON
object. The key is the first 32 bytes of ENCRYPTION_SECRET, so rows written
by the web dashboard decrypt here unchanged.
"""
import base64
import json
import os
from typing import Any, Dict, Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

IV_BYTES = 12


class CredentialDecryptError(ValueError):
    """Ciphertext is malformed or was encrypted with another secret."""


def _key(secret: Optional[str] = None) -> bytes:
    secret = secret if secret is not None else os.environ.get("ENCRYPTION_SECRET", "")
    if len(secret) < 32:
        raise RuntimeError("ENCRYPTION_SECRET must be at least 32 characters long")
    return secret[:32].encode("utf-8")[:32]


def encrypt_json(data: Dict[str, Any], secret: Optional[str] = None) -> str:
    iv = os.urandom(IV_BYTES)
    ciphertext = AESGCM(_key(secret)).encrypt(iv, json.dumps(data).encode("utf-8"), None)
    return f"{base64.b64encode(iv).decode()}:{base64.b64encode(ciphertext).decode()}"


def decrypt_json(encrypted: str, secret: Optional[str] = None) -> Dict[str, Any]:
    key = _key(secret)
    try:
        iv_b64, ct_b64 = encrypted.split(":", 1)
        plaintext = AESGCM(key).decrypt(base64.b64decode(iv_b64), base64.b64decode(ct_b64), None)
        data = json.loads(plaintext.decode("utf-8"))
    except Exception as exc:
        raise CredentialDecryptError(f"could not decrypt credential: {type(exc).__name__}") from exc
    if not isinstance(data, dict):
        raise CredentialDecryptError("decrypted credential is not a JSON object")
    return data
