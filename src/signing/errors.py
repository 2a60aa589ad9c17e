"""
Signing Errors

Failures raised while selecting the signing key and producing signatures.
Every message names the key id, fingerprint or path involved.
"""

from datetime import datetime


class SignError(Exception):
    """Base class for key selection and signing errors."""


class KeyRingFormatError(SignError):
    """Key bytes could not be decoded as an OpenPGP secret key ring."""


class SecretKeyNotFound(SignError):
    """No usable secret key (or none with the requested id) exists in the key ring."""


class PassphraseRequired(SignError):
    """The selected secret key is encrypted and no passphrase was supplied."""


class PrivateKeyMissing(SignError):
    """The selected key carries no private key material (e.g. a GnuPG stub)."""


class KeyExpired(SignError):
    """The selected key, or the master key it is bound to, has expired."""

    def __init__(self, key_description: str, expired_at: datetime):
        self.key_description = key_description
        self.expired_at = expired_at
        super().__init__(f"{key_description} was expired at: {expired_at.isoformat()}")


class KeyDecryptError(SignError):
    """Secret key material could not be decrypted (wrong passphrase, corrupt data)."""


class SigningError(SignError):
    """Reading content, computing or writing a signature failed."""


class ArtifactError(SignError):
    """An artifact handed to the signer is incomplete."""
