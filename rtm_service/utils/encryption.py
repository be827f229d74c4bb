"""
Encryption utilities for storing Azure DevOps personal access tokens.

Uses Fernet symmetric encryption from the cryptography library.
Requires the CONNECTION_SECRET_KEY environment variable.
"""
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken

from rtm_service.config import settings


def _get_cipher(secret_key: Optional[str] = None) -> Fernet:
    """
    Build the Fernet cipher from the configured key (read at call time, not import time).
    
    Raises:
        RuntimeError: If the key is missing or not a valid Fernet key
    """
    key = secret_key or settings.connection_secret_key
    if not key:
        raise RuntimeError(
            "CONNECTION_SECRET_KEY environment variable is required for credential encryption. "
            "Generate a key with: python3 -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'"
        )
    key_bytes = key.encode() if isinstance(key, str) else key
    # Fernet keys are 44 bytes when base64-encoded
    if len(key_bytes) != 44:
        raise RuntimeError("CONNECTION_SECRET_KEY must be a valid Fernet key (44 bytes base64-encoded)")
    try:
        return Fernet(key_bytes)
    except (ValueError, TypeError) as e:
        raise RuntimeError(f"Failed to initialize encryption cipher: {str(e)}") from e


def encrypt_secret(plaintext: str, secret_key: Optional[str] = None) -> str:
    """
    Encrypt a plaintext secret.
    
    Args:
        plaintext: Plain text secret to encrypt
        secret_key: Optional Fernet key overriding the configured one
    
    Returns:
        str: Base64-encoded ciphertext
    """
    if not plaintext:
        raise ValueError("plaintext cannot be empty")
    return _get_cipher(secret_key).encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_secret(ciphertext: str, secret_key: Optional[str] = None) -> str:
    """
    Decrypt a ciphertext secret.
    
    Raises:
        RuntimeError: If the ciphertext was not produced with the configured key
    """
    if not ciphertext:
        raise ValueError("ciphertext cannot be empty")
    try:
        return _get_cipher(secret_key).decrypt(ciphertext.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        raise RuntimeError("Failed to decrypt secret: invalid token or wrong key") from e
