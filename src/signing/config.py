"""
Signing Configuration

Settings for a signing session, loadable from a YAML file::

    key_id: ABCDEF0123456789
    key_file: ~/.gnupg/sign-key.asc
    output_directory: build
    skip_no_key: true
"""

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from key_material import KeyMaterialRequest, MissingKeyFilePolicy

from .signature_engine import DEFAULT_CHUNK_SIZE

DEFAULT_KEY_FILE = '~/.gnupg/sign-key.asc'
DEFAULT_OUTPUT_DIRECTORY = 'build'


@dataclass(frozen=True)
class SigningConfig:
    key_id: Optional[str] = None
    key_pass: Optional[str] = None
    key_file: Optional[str] = DEFAULT_KEY_FILE
    server_id: Optional[str] = None
    settings_file: Optional[str] = None
    skip_no_key: bool = False
    include_version: bool = False
    missing_key_file: str = MissingKeyFilePolicy.UNAVAILABLE.value
    output_directory: str = DEFAULT_OUTPUT_DIRECTORY
    max_workers: Optional[int] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self):
        # raises ValueError for unknown policy names
        MissingKeyFilePolicy(self.missing_key_file)
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be positive")

    def __repr__(self) -> str:
        masked = None if self.key_pass is None else '***'
        values = ', '.join(f"{f.name}={getattr(self, f.name)!r}" for f in fields(self) if f.name != 'key_pass')
        return f"SigningConfig(key_pass={masked!r}, {values})"

    @property
    def missing_key_file_policy(self) -> MissingKeyFilePolicy:
        return MissingKeyFilePolicy(self.missing_key_file)

    def key_material_request(self) -> KeyMaterialRequest:
        return KeyMaterialRequest(
            server_id=self.server_id,
            key_id=self.key_id,
            key_pass=self.key_pass,
            key_file=self.key_file,
        )

    def with_overrides(self, **overrides: Any) -> 'SigningConfig':
        """Copy with the given non-None values replaced."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SigningConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        values = dict(data)
        for key in ('key_id', 'key_pass', 'key_file', 'server_id', 'settings_file', 'output_directory'):
            if values.get(key) is not None:
                values[key] = str(values[key])
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'SigningConfig':
        """
        Load configuration from a YAML file.

        Raises:
            FileNotFoundError: if the file does not exist
            ValueError: if the document is not a mapping or has unknown keys
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        return cls.from_dict(data)
