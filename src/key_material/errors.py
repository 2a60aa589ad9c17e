"""Errors raised while resolving signing key material."""


class KeyMaterialError(Exception):
    """Base class for key material resolution errors."""


class InvalidKeyId(KeyMaterialError, ValueError):
    """The configured key id is not a 64-bit hexadecimal value."""

    def __init__(self, key_id: str, reason: str = ""):
        self.key_id = key_id
        message = f"Invalid keyId: {key_id!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class KeyUnavailable(KeyMaterialError):
    """No key bytes could be resolved from any source."""


class PassphraseDecryptError(KeyMaterialError):
    """The passphrase decryption collaborator rejected the configured value."""


class KeyFileError(KeyMaterialError, OSError):
    """The key file exists but could not be read."""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path


class KeyFileNotFound(KeyFileError):
    """The key file does not exist and the policy treats that as fatal."""
