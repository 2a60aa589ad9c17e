"""
Environment Provider Module

Reads configuration from environment variables through a replaceable getter
so tests never have to mutate the process environment.
"""

import logging
import os
from typing import Callable, Mapping, Optional

logger = logging.getLogger(__name__)

SIGN_KEY_ID_ENV = 'SIGN_KEY_ID'
SIGN_KEY_ENV = 'SIGN_KEY'
SIGN_KEY_PASS_ENV = 'SIGN_KEY_PASS'

# some invoking tools export unset properties as the literal text "null"
_NULL_VALUES = ('', 'null')


class EnvironmentProvider:
    """Environment variable access with 'null' and blank values treated as unset."""

    def __init__(self, getter: Optional[Callable[[str], Optional[str]]] = None):
        self._getter = getter or os.environ.get

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> 'EnvironmentProvider':
        return cls(values.get)

    def get_env(self, name: str) -> Optional[str]:
        """
        Read an environment variable.

        Args:
            name: Variable name

        Returns:
            Trimmed value, or None if unset, blank or 'null'
        """
        value = self._getter(name)
        if value is not None:
            value = value.strip()
        if value is None or value in _NULL_VALUES:
            logger.debug("No %s set as environment variable", name)
            return None
        logger.debug("Retrieved %s configuration from environment variable", name)
        return value
