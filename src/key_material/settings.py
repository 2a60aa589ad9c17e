"""
Settings Store Module

Server records holding signing key settings, looked up by identifier. The
default store reads a YAML document of the form::

    servers:
      - id: release-key
        username: ABCDEF0123456789
        passphrase: "{encrypted}"
        privateKey: ~/.gnupg/release-key.asc
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import yaml


@dataclass(frozen=True)
class ServerSettings:
    """A single settings record; username carries the key id."""
    id: str
    username: Optional[str] = None
    passphrase: Optional[str] = None
    private_key: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServerSettings':
        if 'id' not in data:
            raise ValueError(f"Server entry without id: {sorted(data)}")

        def text(key: str, *aliases: str) -> Optional[str]:
            for name in (key,) + aliases:
                if data.get(name) is not None:
                    return str(data[name])
            return None

        return cls(
            id=str(data['id']),
            username=text('username'),
            passphrase=text('passphrase'),
            private_key=text('privateKey', 'private_key'),
        )


class SettingsStore:
    """In-memory collection of server records."""

    def __init__(self, servers: Iterable[ServerSettings] = ()):
        self._servers = {server.id: server for server in servers}

    def get_server(self, server_id: str) -> Optional[ServerSettings]:
        return self._servers.get(server_id)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'SettingsStore':
        """
        Load server records from a YAML file.

        Raises:
            FileNotFoundError: if the settings file does not exist
            ValueError: if the document does not have the expected shape
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Settings file not found: {path}")

        with open(path, 'r') as f:
            document = yaml.safe_load(f) or {}

        if not isinstance(document, dict):
            raise ValueError(f"Settings file {path} must contain a mapping")
        servers = document.get('servers') or []
        if not isinstance(servers, list):
            raise ValueError(f"'servers' in {path} must be a list")
        return cls(ServerSettings.from_dict(entry) for entry in servers)
