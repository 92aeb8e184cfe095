"""
Encryption service for the persisted session.
Uses Fernet symmetric encryption so tokens never sit in the store as plain text.
"""

from cryptography.fernet import Fernet, InvalidToken

from leadsync.config import settings
from leadsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EncryptionError(Exception):
    """Custom exception for encryption/decryption errors."""

    pass


def _get_fernet(key: str | None = None) -> Fernet:
    """
    Get Fernet instance with the given key or the configured one.

    Raises:
        EncryptionError: If no encryption key is configured or it is malformed
    """
    raw_key = key or settings.ENCRYPTION_KEY
    if not raw_key:
        raise EncryptionError("ENCRYPTION_KEY not configured in environment")

    try:
        return Fernet(raw_key.encode("utf-8"))
    except Exception as e:
        logger.error("Failed to initialize Fernet cipher", error=str(e))
        raise EncryptionError(f"Invalid encryption key: {e}") from e


def encrypt_text(plain_text: str, key: str | None = None) -> str:
    """
    Encrypt a string for storage.

    Returns:
        str: URL-safe Fernet token (the store works with decoded strings)

    Raises:
        EncryptionError: If encryption fails
    """
    if not plain_text or not isinstance(plain_text, str):
        raise EncryptionError("Plain text must be a non-empty string")

    try:
        encrypted = _get_fernet(key).encrypt(plain_text.encode("utf-8"))
        return encrypted.decode("utf-8")
    except EncryptionError:
        raise
    except Exception as e:
        logger.error("Failed to encrypt value", error=str(e))
        raise EncryptionError(f"Encryption failed: {e}") from e


def decrypt_text(token: str, key: str | None = None) -> str:
    """
    Decrypt a value produced by encrypt_text.

    Raises:
        EncryptionError: If decryption fails or the token is invalid
    """
    if not token or not isinstance(token, str):
        raise EncryptionError("Encrypted value must be a non-empty string")

    try:
        return _get_fernet(key).decrypt(token.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        logger.error("Decryption failed - invalid token")
        raise EncryptionError("Invalid or corrupted token") from e
    except EncryptionError:
        raise
    except Exception as e:
        logger.error("Failed to decrypt value", error=str(e))
        raise EncryptionError(f"Decryption failed: {e}") from e


def validate_encryption_config(key: str | None = None) -> bool:
    """Round-trip dummy data to confirm the key works."""
    try:
        sample = "leadsync_encryption_check"
        is_valid = decrypt_text(encrypt_text(sample, key), key) == sample
        if not is_valid:
            logger.error("Encryption validation failed - data mismatch")
        return is_valid
    except Exception as e:
        logger.error("Encryption configuration validation failed", error=str(e))
        return False


def generate_new_key() -> str:
    """
    Generate a new Fernet encryption key.

    Note:
        Store the result in ENCRYPTION_KEY.
    """
    return Fernet.generate_key().decode("utf-8")
