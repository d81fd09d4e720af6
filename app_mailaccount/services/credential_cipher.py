"""
Credential cipher

Authenticated encryption (AES-256-GCM) of third-party secrets. The id of the
account row is bound as associated data, so an envelope copied to another row
cannot be decrypted there.

Envelope format: ``nonce:authTag:ciphertext``, each segment lowercase hex.
"""
import base64
import binascii
import logging
import os
import re
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app_mailaccount.exceptions.account_exception import CryptoException
from common.components.singleton import Singleton
from common.exceptions.configuration_error_exception import ConfigurationErrorException

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16
ENVELOPE_SEPARATOR = ":"

_ENVELOPE_PATTERN = re.compile(
    r"^[0-9a-f]{%d}:[0-9a-f]{%d}:(?:[0-9a-f]{2})*$" % (NONCE_LENGTH * 2, TAG_LENGTH * 2)
)


def is_envelope(value: Optional[str]) -> bool:
    """Tell whether the value is already in envelope format"""
    if not value or not isinstance(value, str):
        return False
    return _ENVELOPE_PATTERN.match(value) is not None


def parse_key(raw_key: Union[str, bytes]) -> bytes:
    """
    Parse a 256-bit key given as 64 hex chars or urlsafe base64

    Raises:
        ConfigurationErrorException: if the key is missing or not 32 bytes
    """
    if isinstance(raw_key, bytes):
        key = raw_key
    else:
        raw_key = (raw_key or "").strip()
        if not raw_key:
            raise ConfigurationErrorException("MAIL_ACCOUNT_ENCRYPTION_KEY is not set")
        try:
            if len(raw_key) == KEY_LENGTH * 2:
                key = bytes.fromhex(raw_key)
            else:
                key = base64.urlsafe_b64decode(raw_key)
        except (binascii.Error, ValueError) as e:
            raise ConfigurationErrorException("MAIL_ACCOUNT_ENCRYPTION_KEY is neither hex nor base64") from e
    if len(key) != KEY_LENGTH:
        raise ConfigurationErrorException(
            f"MAIL_ACCOUNT_ENCRYPTION_KEY must be {KEY_LENGTH} bytes, got {len(key)}"
        )
    return key


class CredentialCipher(Singleton):
    """Encrypts and decrypts secrets bound to a record id"""

    def __init__(self, key: Union[str, bytes]):
        self._aesgcm = AESGCM(parse_key(key))

    def encrypt(self, record_id, plaintext: Optional[str]) -> Optional[str]:
        """
        Encrypt plaintext for the record

        A value that already is an envelope is returned unchanged, so callers
        can pass stored values back without double encryption.

        Args:
            record_id: Id of the account row the secret belongs to
            plaintext: Secret to encrypt

        Returns:
            Envelope string, or None for an empty secret
        """
        if plaintext is None or plaintext == "":
            return None
        if is_envelope(plaintext):
            return plaintext

        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), self._aad(record_id))
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ENVELOPE_SEPARATOR.join((nonce.hex(), tag.hex(), ciphertext.hex()))

    def decrypt(self, record_id, envelope: Optional[str]) -> Optional[str]:
        """
        Decrypt an envelope of the record

        Args:
            record_id: Id of the account row the secret belongs to
            envelope: Envelope produced by encrypt

        Returns:
            Plaintext secret, or None for an empty envelope

        Raises:
            CryptoException: if the format, tag or record binding does not match
        """
        if envelope is None or envelope == "":
            return None
        if not is_envelope(envelope):
            raise CryptoException("Invalid credential envelope format", error_code="INVALID_ENVELOPE")

        nonce_hex, tag_hex, ciphertext_hex = envelope.split(ENVELOPE_SEPARATOR)
        sealed = bytes.fromhex(ciphertext_hex) + bytes.fromhex(tag_hex)
        try:
            plaintext = self._aesgcm.decrypt(bytes.fromhex(nonce_hex), sealed, self._aad(record_id))
        except InvalidTag as e:
            logger.warning("[CredentialCipher.decrypt] Authentication failed for record %s", record_id)
            raise CryptoException("Credential envelope failed authentication",
                                  error_code="ENVELOPE_AUTH_FAILED") from e
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CryptoException("Credential is not valid utf-8", error_code="INVALID_PLAINTEXT") from e

    @staticmethod
    def _aad(record_id) -> bytes:
        if record_id is None or str(record_id) == "":
            raise CryptoException("Record id is required to bind a credential", error_code="MISSING_RECORD_ID")
        return str(record_id).encode("utf-8")


def get_credential_cipher() -> CredentialCipher:
    """Get the process-wide cipher built from configuration"""
    from app_mailaccount.config import get_app_config

    return CredentialCipher(get_app_config()["encryption_key"])
