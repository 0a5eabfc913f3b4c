import os
import base64
import hashlib
from typing import Optional
from nacl import secret, utils


def _box() -> secret.SecretBox:
    # 32-byte key via SHA-256 of the app secret
    key = hashlib.sha256(os.getenv("SECRET_KEY", "dev_secret_key_change_me").encode("utf-8")).digest()
    return secret.SecretBox(key)


def encrypt_text(plain: str) -> str:
    nonce = utils.random(secret.SecretBox.NONCE_SIZE)
    sealed = _box().encrypt(plain.encode("utf-8"), nonce)
    return base64.b64encode(sealed).decode("utf-8")


def decrypt_text(enc_b64: Optional[str]) -> Optional[str]:
    """Return the plaintext, or None for empty, tampered or foreign-key ciphertext."""
    if not enc_b64:
        return None
    try:
        return _box().decrypt(base64.b64decode(enc_b64)).decode("utf-8")
    except Exception:
        return None
