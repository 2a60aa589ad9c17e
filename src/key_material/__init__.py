"""
Key Material Module

Resolves the signing key id, passphrase and key bytes from environment
variables, explicit configuration and a settings store.
"""

from .environment import SIGN_KEY_ENV, SIGN_KEY_ID_ENV, SIGN_KEY_PASS_ENV, EnvironmentProvider
from .errors import (
    KeyMaterialError,
    InvalidKeyId,
    KeyUnavailable,
    PassphraseDecryptError,
    KeyFileError,
    KeyFileNotFound,
)
from .resolver import (
    KeyMaterialRequest,
    KeyMaterialResolver,
    MissingKeyFilePolicy,
    ResolvedKeyMaterial,
    expand_user_home,
    parse_key_id,
)
from .secret import SecretBuffer
from .settings import ServerSettings, SettingsStore

__all__ = [
    'SIGN_KEY_ENV', 'SIGN_KEY_ID_ENV', 'SIGN_KEY_PASS_ENV', 'EnvironmentProvider',
    'KeyMaterialError', 'InvalidKeyId', 'KeyUnavailable', 'PassphraseDecryptError',
    'KeyFileError', 'KeyFileNotFound',
    'KeyMaterialRequest', 'KeyMaterialResolver', 'MissingKeyFilePolicy',
    'ResolvedKeyMaterial', 'expand_user_home', 'parse_key_id',
    'SecretBuffer', 'ServerSettings', 'SettingsStore',
]
