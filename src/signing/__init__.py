"""
Artifact Signing Module

Loads an OpenPGP signing key and produces detached, ASCII armored
signatures for build artifacts and their transformed variants.
"""

from .errors import (
    SignError,
    KeyRingFormatError,
    SecretKeyNotFound,
    PassphraseRequired,
    PrivateKeyMissing,
    KeyExpired,
    KeyDecryptError,
    SigningError,
    ArtifactError,
)
from .key_loader import KeyRingLoader, LoadedSigningKey
from .signature_engine import SignatureEngine
from .artifact_signer import (
    ArtifactSigner,
    ArtifactVariant,
    NamingPolicy,
    NoTransformation,
    SignatureResult,
    SourceArtifact,
    VariantProvider,
    signature_file_name,
)
from .config import SigningConfig
from .session import SigningSession

__all__ = [
    'SignError', 'KeyRingFormatError', 'SecretKeyNotFound', 'PassphraseRequired',
    'PrivateKeyMissing', 'KeyExpired', 'KeyDecryptError', 'SigningError', 'ArtifactError',
    'KeyRingLoader', 'LoadedSigningKey', 'SignatureEngine',
    'ArtifactSigner', 'ArtifactVariant', 'NamingPolicy', 'NoTransformation',
    'SignatureResult', 'SourceArtifact', 'VariantProvider', 'signature_file_name',
    'SigningConfig', 'SigningSession',
]
