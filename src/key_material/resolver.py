"""
Key Material Resolver Module

Merges environment overrides, explicit configuration and settings store
records into the key id, passphrase and raw key bytes used for signing.

Precedence, per value: environment variable > explicit request field >
settings store record. When a settings store id is given, the explicit
request fields are ignored entirely.
"""

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from .environment import SIGN_KEY_ENV, SIGN_KEY_ID_ENV, SIGN_KEY_PASS_ENV, EnvironmentProvider
from .errors import InvalidKeyId, KeyFileError, KeyFileNotFound, PassphraseDecryptError
from .secret import SecretBuffer
from .settings import SettingsStore

logger = logging.getLogger(__name__)

_HEX = re.compile(r'^[0-9A-Fa-f]+$')

PathLike = Union[str, Path]


class MissingKeyFilePolicy(Enum):
    """What to do when the configured key file does not exist."""
    UNAVAILABLE = 'unavailable'
    FAIL = 'fail'


@dataclass(frozen=True)
class KeyMaterialRequest:
    """Key settings supplied by the caller for one execution."""
    server_id: Optional[str] = None
    key_id: Optional[str] = None
    key_pass: Optional[str] = None
    key_file: Optional[PathLike] = None

    def __repr__(self) -> str:
        masked = None if self.key_pass is None else '***'
        return (f"KeyMaterialRequest(server_id={self.server_id!r}, key_id={self.key_id!r}, "
                f"key_pass={masked!r}, key_file={self.key_file!r})")


class ResolvedKeyMaterial:
    """Resolved key id, passphrase and raw key bytes; an empty key means no key is available."""

    def __init__(self,
                 key_id: Optional[int],
                 passphrase: Optional[SecretBuffer],
                 key: SecretBuffer):
        self.key_id = key_id
        self.passphrase = passphrase
        self.key = key

    def __repr__(self) -> str:
        key_id = None if self.key_id is None else f"0x{self.key_id:016X}"
        return (f"ResolvedKeyMaterial(key_id={key_id}, passphrase_set={self.passphrase is not None}, "
                f"key_available={self.key_available})")

    @property
    def key_available(self) -> bool:
        return len(self.key) > 0

    def clear(self) -> None:
        """Scrub the passphrase and key bytes."""
        if self.passphrase is not None:
            self.passphrase.clear()
        self.key.clear()


def parse_key_id(key_id: str) -> int:
    """
    Parse a hexadecimal key id, with or without a 0x prefix.

    Raises:
        InvalidKeyId: if the text is not hex or does not fit in 64 bits
    """
    text = key_id.strip()
    if text[:2].lower() == '0x':
        text = text[2:]
    if not _HEX.match(text):
        raise InvalidKeyId(key_id, "not a hexadecimal number")
    value = int(text, 16)
    if value >= 1 << 64:
        raise InvalidKeyId(key_id, "longer than 64 bits")
    return value


def expand_user_home(path: PathLike, home: Optional[PathLike] = None) -> Path:
    """Replace a leading '~/' with the user home directory."""
    text = str(path)
    for prefix in ('~/', '~' + os.sep):
        if text.startswith(prefix):
            return Path(home if home is not None else Path.home()) / text[len(prefix):]
    return Path(text)


class KeyMaterialResolver:
    """Builds ResolvedKeyMaterial from the environment, a request and the settings store."""

    def __init__(self,
                 environment: Optional[EnvironmentProvider] = None,
                 settings_store: Optional[SettingsStore] = None,
                 passphrase_decryptor: Optional[Callable[[str], str]] = None,
                 missing_key_file: MissingKeyFilePolicy = MissingKeyFilePolicy.UNAVAILABLE,
                 home_directory: Optional[PathLike] = None):
        """
        Args:
            environment: Environment variable provider (process environment by default)
            settings_store: Store consulted when a request carries a server id
            passphrase_decryptor: Optional callable decrypting encrypted-at-rest passphrases
            missing_key_file: Policy applied when the key file does not exist
            home_directory: Directory substituted for a leading '~/' in key file paths
        """
        self.environment = environment or EnvironmentProvider()
        self.settings_store = settings_store
        self.passphrase_decryptor = passphrase_decryptor
        self.missing_key_file = missing_key_file
        self.home_directory = home_directory

    def resolve(self, request: KeyMaterialRequest) -> ResolvedKeyMaterial:
        if request.server_id is not None:
            key_id, key_pass, key_file = self._from_settings(request.server_id)
        else:
            key_id, key_pass, key_file = request.key_id, request.key_pass, request.key_file

        return ResolvedKeyMaterial(
            key_id=self._resolve_key_id(key_id),
            passphrase=self._resolve_passphrase(key_pass),
            key=self._resolve_key(key_file),
        )

    def _from_settings(self, server_id: str):
        server = self.settings_store.get_server(server_id) if self.settings_store is not None else None
        if server is None:
            logger.debug("server id: %s not found in settings", server_id)
            return None, None, None
        logger.debug("server id: %s found - read key info from settings", server_id)
        return server.username, server.passphrase, server.private_key

    def _resolve_key_id(self, key_id: Optional[str]) -> Optional[int]:
        value = self.environment.get_env(SIGN_KEY_ID_ENV) or key_id
        return parse_key_id(value) if value is not None else None

    def _resolve_passphrase(self, key_pass: Optional[str]) -> Optional[SecretBuffer]:
        value = self.environment.get_env(SIGN_KEY_PASS_ENV) or key_pass
        if value is None:
            return None
        if self.passphrase_decryptor is not None:
            try:
                value = self.passphrase_decryptor(value)
            except Exception as e:
                raise PassphraseDecryptError(f"Invalid encrypted password: {e}") from e
        return SecretBuffer.from_optional(value)

    def _resolve_key(self, key_file: Optional[PathLike]) -> SecretBuffer:
        key = self.environment.get_env(SIGN_KEY_ENV)
        if key is not None:
            return SecretBuffer(key.encode('ascii', errors='replace'))
        return self._key_from_file(key_file)

    def _key_from_file(self, key_file: Optional[PathLike]) -> SecretBuffer:
        if key_file is None:
            logger.debug("Key file not provided")
            return SecretBuffer()

        path = expand_user_home(key_file, self.home_directory)
        if not path.exists():
            if self.missing_key_file is MissingKeyFilePolicy.FAIL:
                raise KeyFileNotFound(f"Key file: {path} not found", path)
            logger.debug("Key file: %s not exist", path)
            return SecretBuffer()

        logger.debug("Read key from file: %s", path)
        try:
            with open(path, 'rb') as f:
                return SecretBuffer(f.read())
        except OSError as e:
            raise KeyFileError(f"Cannot read key file {path}: {e}", path) from e
