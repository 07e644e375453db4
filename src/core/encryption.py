"""
Symmetric encryption for wallet secrets at rest.

Private keys and seed phrases are stored as Fernet tokens. The Fernet key is
derived from a configured secret so operators only manage a passphrase.
"""

import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class DecryptionError(Exception):
    """A stored secret could not be decrypted with the configured key."""


def _fernet_for(secret: str) -> Fernet:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_data(data: str, secret: str) -> str:
    """
    Encrypt a string with a key derived from ``secret``.

    Args:
        data: Plaintext to encrypt
        secret: Passphrase the Fernet key is derived from

    Returns:
        URL-safe Fernet token
    """
    return _fernet_for(secret).encrypt(data.encode("utf-8")).decode("ascii")


def decrypt_data(token: str, secret: str) -> str:
    """
    Decrypt a token produced by :func:`encrypt_data`.

    Raises:
        DecryptionError: If the key is wrong or the token was tampered with
    """
    try:
        return _fernet_for(secret).decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, UnicodeError) as e:
        logger.error("Failed to decrypt stored secret")
        raise DecryptionError("Unable to decrypt data") from e
