"""
Key Ring Loader Module

Parses raw key bytes with PGPy, selects the signing key and checks it before
any artifact is signed: passphrase consistency, presence of private
material, expiration of the key and of its master key.
"""

import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple, Union

from pgpy import PGPKey
from pgpy.constants import PacketTag, String2KeyType
from pgpy.errors import (
    PGPDecryptionError,
    PGPError,
    PGPInsecureCipherError,
    PGPOpenSSLCipherNotSupportedError,
)

from key_material import KeyUnavailable, ResolvedKeyMaterial, SecretBuffer

from .errors import (
    KeyDecryptError,
    KeyExpired,
    KeyRingFormatError,
    PassphraseRequired,
    PrivateKeyMissing,
    SecretKeyNotFound,
    SignError,
)

logger = logging.getLogger(__name__)

Passphrase = Union[SecretBuffer, bytes, bytearray, str, None]

# PGPy signals malformed input with a mix of its own and builtin exceptions
PARSE_ERRORS = (PGPError, ValueError, TypeError, IndexError, KeyError, NotImplementedError)


def format_key_id(key_id: int) -> str:
    return f"0x{key_id:016X}"


def key_id_of(key: PGPKey) -> int:
    return int(key.fingerprint.keyid, 16)


def fingerprint_text(key: PGPKey) -> str:
    return '0x' + key.fingerprint


def key_id_description(key: PGPKey) -> str:
    """Describe a key by fingerprint, or a subkey by id plus its master fingerprint."""
    if not key.is_primary:
        return f"SubKeyId: {format_key_id(key_id_of(key))} of {fingerprint_text(key.parent)}"
    return f"KeyId: {fingerprint_text(key)}"


def user_ids(key: PGPKey) -> List[str]:
    """User ids of the key; a subkey reports those of its master key."""
    owner = key if key.is_primary else key.parent
    result = []
    for uid in owner.userids:
        if uid.userid not in result:
            result.append(uid.userid)
    return result


def is_stub(key: PGPKey) -> bool:
    """True for a GnuPG stub: a secret key exported without its private material."""
    if key.is_public:
        return False
    s2k = key.__key__.s2k
    return bool(s2k) and s2k.specifier == String2KeyType.GNUExtension


def has_private_material(key: PGPKey) -> bool:
    return not key.is_public and not is_stub(key)


def is_encrypted(key: PGPKey) -> bool:
    return key.is_protected and not is_stub(key)


def key_expiration(key: PGPKey) -> Optional[datetime]:
    """
    Expiration instant of a key, None if it never expires.

    A master key takes the latest value from its user id self-signatures, a
    subkey from its binding signatures. A zero validity period means no
    expiration.
    """
    if key.is_primary:
        signatures = [uid.selfsig for uid in key.userids if uid.selfsig is not None]
    else:
        signatures = list(key.self_signatures)

    validity: Optional[timedelta] = None
    for signature in signatures:
        if signature.key_expiration is not None:
            validity = signature.key_expiration
    if not validity:
        return None
    return key.created + validity


def clear_private_material(key: PGPKey) -> None:
    """Overwrite the private components of a key and its subkeys with zeros."""
    for k in [key, *key.subkeys.values()]:
        if has_private_material(k):
            k.__key__.clear()


@dataclass(frozen=True)
class LoadedSigningKey:
    """
    The selected secret key ready for signing.

    Built once per session and never rebound, so a single instance can be
    shared by concurrent signing operations. clear() scrubs the unlocked
    private material once signing is over.
    """
    secret_key: PGPKey
    key_ring: PGPKey
    _unlocked: contextlib.ExitStack = field(default_factory=contextlib.ExitStack, repr=False, compare=False)

    @property
    def key_id(self) -> int:
        return key_id_of(self.secret_key)

    @property
    def fingerprint(self) -> str:
        return str(self.secret_key.fingerprint)

    @property
    def issuer_fingerprint(self):
        return self.secret_key.fingerprint

    @property
    def public_key_algorithm(self):
        return self.secret_key.key_algorithm

    @property
    def user_ids(self) -> List[str]:
        return user_ids(self.secret_key)

    @property
    def description(self) -> str:
        return key_id_description(self.secret_key)

    @property
    def private_key(self):
        """The cryptography private key object built from the unlocked material."""
        return self.secret_key.__key__.__privkey__()

    @property
    def is_cleared(self) -> bool:
        material = self.secret_key.__key__
        return not any(getattr(material, name) for name in material.__privfields__)

    def clear(self) -> None:
        """Scrub the private material of the selected key and of its key ring."""
        self._unlocked.close()
        clear_private_material(self.key_ring)


def _starts_with_key_packet(header: int) -> bool:
    """True if a packet header octet announces a secret or public (sub)key packet."""
    if not header & 0x80:
        return False
    if header & 0x40:
        tag = header & 0x3F
    else:
        tag = (header >> 2) & 0x0F
    return tag in (PacketTag.SecretKey, PacketTag.PublicKey)


def _passphrase_text(passphrase: Passphrase) -> Optional[str]:
    if passphrase is None:
        return None
    if isinstance(passphrase, SecretBuffer):
        passphrase = passphrase.value
    if isinstance(passphrase, (bytes, bytearray)):
        return passphrase.decode('utf-8')
    return passphrase


class KeyRingLoader:
    """Selects and unlocks the signing key from raw key ring bytes."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        """
        Args:
            clock: Returns the current time (aware datetime), used for expiration checks
        """
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def load_material(self, material: ResolvedKeyMaterial) -> LoadedSigningKey:
        """Load the signing key described by resolved key material."""
        return self.load(material.key.value, material.key_id, material.passphrase)

    def load(self,
             key: Union[bytes, bytearray],
             key_id: Optional[int] = None,
             passphrase: Passphrase = None) -> LoadedSigningKey:
        """
        Select, validate and unlock a signing key.

        Args:
            key: Binary or ASCII armored secret key ring data
            key_id: Id of the key to use; the first key with private material if None
            passphrase: Passphrase protecting the key, if encrypted

        Returns:
            LoadedSigningKey

        Raises:
            KeyUnavailable: key bytes are empty
            KeyRingFormatError: key bytes are not a secret key ring
            SecretKeyNotFound: no matching key
            PassphraseRequired: encrypted key and no passphrase
            PrivateKeyMissing: selected key has no private material
            KeyExpired: selected key or its master key has expired
            KeyDecryptError: private material cannot be decrypted
        """
        if not key:
            raise KeyUnavailable("No signing key available")

        key_rings = self._parse(key)
        try:
            secret_key, key_ring = self._select(key_rings, key_id)
        except SecretKeyNotFound:
            for ring in key_rings:
                clear_private_material(ring)
            raise

        # only the selected ring stays referenced
        for ring in key_rings:
            if ring is not key_ring:
                clear_private_material(ring)

        try:
            loaded = self._unlock(secret_key, key_ring, _passphrase_text(passphrase))
        except SignError:
            clear_private_material(key_ring)
            raise

        logger.info("Loaded keyId: %016X, uIds: %s", loaded.key_id, loaded.user_ids)
        return loaded

    @staticmethod
    def _parse(key: Union[bytes, bytearray]) -> List[PGPKey]:
        try:
            unarmored = PGPKey.ascii_unarmor(key)
        except PARSE_ERRORS as e:
            raise KeyRingFormatError(f"Invalid secret key data: {e}") from e

        magic, body = unarmored['magic'], unarmored['body']
        if magic is not None and 'KEY' not in magic:
            raise KeyRingFormatError(f"Invalid secret key data: armored {magic} block")
        if not body or not _starts_with_key_packet(body[0]):
            raise KeyRingFormatError("Invalid secret key data: no OpenPGP key packet")

        try:
            parsed = PGPKey.from_blob(body)
        except PARSE_ERRORS as e:
            raise KeyRingFormatError(f"Invalid secret key data: {e}") from e
        finally:
            body[:] = bytes(len(body))

        first, others = parsed if isinstance(parsed, tuple) else (parsed, {})
        key_rings = [] if first.fingerprint is None else [first]
        key_rings.extend(ring for ring in others.values() if ring is not first)

        if not key_rings:
            raise KeyRingFormatError("Invalid secret key data: no OpenPGP key found")
        secret_rings = [ring for ring in key_rings if not ring.is_public]
        if not secret_rings:
            raise KeyRingFormatError("Invalid secret key data: only public keys found")
        return secret_rings

    @staticmethod
    def _select(key_rings: List[PGPKey], key_id: Optional[int]) -> Tuple[PGPKey, PGPKey]:
        if key_id is not None:
            wanted = f"{key_id:016X}"
            for ring in key_rings:
                for candidate in [ring, *ring.subkeys.values()]:
                    if candidate.fingerprint.keyid == wanted:
                        return candidate, ring
            raise SecretKeyNotFound(f"Secret key not found: {format_key_id(key_id)}")

        for ring in key_rings:
            for candidate in [ring, *ring.subkeys.values()]:
                if has_private_material(candidate):
                    return candidate, ring

        raise SecretKeyNotFound("Secret key not found: no key with private key material")

    def _unlock(self, secret_key: PGPKey, key_ring: PGPKey, passphrase: Optional[str]) -> LoadedSigningKey:
        if is_encrypted(secret_key) and passphrase is None:
            raise PassphraseRequired(
                f"Secret key {format_key_id(key_id_of(secret_key))} is encrypted - keyPass is required")
        if not is_encrypted(secret_key) and passphrase is not None:
            logger.warning("Plain secret key - password is not needed")

        if is_stub(secret_key):
            raise PrivateKeyMissing(
                f"Private key not found in secret key: {format_key_id(key_id_of(secret_key))}")

        self._verify_expiration(secret_key)

        loaded = LoadedSigningKey(secret_key=secret_key, key_ring=key_ring)
        try:
            if is_encrypted(secret_key):
                # the unlock context clears the decrypted material when it exits
                loaded._unlocked.enter_context(secret_key.unlock(passphrase))
        except (PGPError, PGPDecryptionError, PGPInsecureCipherError, PGPOpenSSLCipherNotSupportedError,
                ValueError, TypeError, NotImplementedError) as e:
            loaded.clear()
            raise KeyDecryptError(
                f"Cannot extract private key from {key_id_description(secret_key)}: {e}") from e

        if loaded.is_cleared:
            raise KeyDecryptError(f"Cannot extract private key from {key_id_description(secret_key)}: "
                                  "no private key material")
        return loaded

    def _verify_expiration(self, secret_key: PGPKey) -> None:
        now = self.clock()
        keys = [secret_key] if secret_key.is_primary else [secret_key.parent, secret_key]
        for key in keys:
            expiration = key_expiration(key)
            if expiration is not None and now > expiration:
                raise KeyExpired(key_id_description(key), expiration)
