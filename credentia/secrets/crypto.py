"""
AES-256-GCM encryption for locally stored secrets.

The master key is a 32-byte random key stored at <secrets_dir>/.credentia-key
(chmod 600). Each payload gets a unique 12-byte nonce prepended to the ciphertext.
"""

from __future__ import annotations

import secrets
import stat
import threading
from pathlib import Path

KEY_FILENAME = ".credentia-key"

_cached_keys: dict[Path, bytes] = {}
_cache_lock = threading.Lock()


def init_master_key(directory: Path | str) -> Path:
    """Generate a new master key file. Returns the path. Skips if it already exists."""
    key_path = Path(directory) / KEY_FILENAME
    if key_path.exists():
        return key_path
    key_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_bytes(secrets.token_bytes(32))
    key_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 600
    return key_path


def get_master_key(directory: Path | str) -> bytes:
    """Load the master key for a secrets directory (cached per directory)."""
    key_path = (Path(directory) / KEY_FILENAME).resolve()
    with _cache_lock:
        cached = _cached_keys.get(key_path)
        if cached is not None:
            return cached

        if not key_path.exists():
            raise FileNotFoundError(
                f"Secrets master key not found at {key_path}. "
                "Call init_master_key() on the secrets directory first."
            )
        key = key_path.read_bytes()
        if len(key) != 32:
            raise ValueError(f"Secrets master key must be 32 bytes, got {len(key)}")
        _cached_keys[key_path] = key
        return key


def reset_key_cache() -> None:
    """Clear cached master keys (for testing)."""
    with _cache_lock:
        _cached_keys.clear()


def encrypt(plaintext: str, master_key: bytes) -> bytes:
    """Encrypt plaintext with AES-256-GCM. Returns nonce (12 bytes) + ciphertext + tag (16 bytes)."""
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM

    nonce = secrets.token_bytes(12)
    ciphertext = AESGCM(master_key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return nonce + ciphertext


def decrypt(data: bytes, master_key: bytes) -> str:
    """Decrypt nonce + ciphertext + tag back to plaintext."""
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM

    if len(data) < 28:  # 12 nonce + 16 tag minimum
        raise ValueError("Encrypted data too short")
    plaintext = AESGCM(master_key).decrypt(data[:12], data[12:], None)
    return plaintext.decode("utf-8")
