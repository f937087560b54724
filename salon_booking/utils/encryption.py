# ===== salon_booking/utils/encryption.py =====
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from salon_booking.config.settings import get_settings


# Generate a key once and store it in your settings/env:
# CALENDAR_ENCRYPTION_KEY = Fernet.generate_key()


def get_cipher(key: Optional[str] = None) -> Fernet:
    """Get Fernet cipher instance"""
    key = key or get_settings().CALENDAR_ENCRYPTION_KEY
    if not key:
        raise ValueError("CALENDAR_ENCRYPTION_KEY is not set")
    return Fernet(key.encode() if isinstance(key, str) else key)


def encrypt_token(token: Optional[str], cipher: Optional[Fernet] = None) -> Optional[bytes]:
    """Encrypt a token string"""
    if not token:
        return None
    cipher = cipher or get_cipher()
    return cipher.encrypt(token.encode())


def decrypt_token(encrypted_token: Optional[bytes], cipher: Optional[Fernet] = None) -> Optional[str]:
    """Decrypt a token. Returns None when the ciphertext cannot be read."""
    if not encrypted_token:
        return None
    cipher = cipher or get_cipher()
    try:
        return cipher.decrypt(encrypted_token).decode()
    except InvalidToken:
        return None
