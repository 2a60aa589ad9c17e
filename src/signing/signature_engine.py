"""
Signature Engine Module

Streams artifact content through an incremental SHA-512 computation and
writes a detached, ASCII armored OpenPGP signature next to the build output.
The signature packet itself is built by PGPy; only the content hashing is
done here so that artifacts are never held in memory as a whole.
"""

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed25519, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed
from pgpy import PGPSignature
from pgpy.constants import HashAlgorithm, SignatureType
from pgpy.errors import PGPError

from .errors import SigningError
from .key_loader import LoadedSigningKey

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 8 * 1024


def sign_digest(private_key, digest: bytes) -> bytes:
    """Sign a precomputed SHA-512 digest the way OpenPGP expects for each key type."""
    prehashed = Prehashed(hashes.SHA512())
    if isinstance(private_key, rsa.RSAPrivateKey):
        return private_key.sign(digest, padding.PKCS1v15(), prehashed)
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return private_key.sign(digest, ec.ECDSA(prehashed))
    if isinstance(private_key, dsa.DSAPrivateKey):
        return private_key.sign(digest, prehashed)
    if isinstance(private_key, ed25519.Ed25519PrivateKey):
        # EdDSA in OpenPGP signs the digest itself
        return private_key.sign(digest)
    raise SigningError(f"Unsupported signing key type: {type(private_key).__name__}")


class SignatureEngine:
    """Produces detached binary-document signatures with a loaded signing key."""

    def __init__(self,
                 signing_key: LoadedSigningKey,
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 clock: Optional[Callable[[], datetime]] = None):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.signing_key = signing_key
        self.chunk_size = chunk_size
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _new_signature(self) -> PGPSignature:
        key = self.signing_key.secret_key
        signature = PGPSignature.new(SignatureType.BinaryDocument, key.key_algorithm, HashAlgorithm.SHA512,
                                     key.fingerprint.keyid, created=self.clock())
        signature._signature.subpackets.addnew('IssuerFingerprint', hashed=True,
                                               _version=4, _issuer_fpr=key.fingerprint)
        return signature

    def signature_for(self, stream: BinaryIO) -> str:
        """
        Compute the armored signature of everything readable from stream.

        Content is consumed in chunk_size pieces, it is never held in memory
        as a whole.
        """
        if self.signing_key.is_cleared:
            raise SigningError(f"Signing key {self.signing_key.description} has been cleared")

        signature = self._new_signature()
        digest = hashes.Hash(hashes.SHA512())
        while True:
            chunk = stream.read(self.chunk_size)
            if not chunk:
                break
            digest.update(chunk)
        # with empty content the hash data is just the signature trailer
        digest.update(bytes(signature.hashdata(b'')))
        value = digest.finalize()

        signature._signature.hash2 = bytearray(value[:2])
        signature._signature.signature.from_signer(sign_digest(self.signing_key.private_key, value))
        signature._signature.update_hlen()
        return str(signature)

    def sign(self, stream: BinaryIO, output_path: Union[str, Path]) -> None:
        """
        Sign the content of stream and write the signature to output_path.

        The signature is written to a temporary file in the target directory
        and renamed into place, so output_path either holds a complete
        signature or is left untouched.

        Raises:
            SigningError: on any read, crypto or write failure
        """
        output_path = Path(output_path)
        try:
            signature = self.signature_for(stream)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            _write_atomically(output_path, signature.encode('ascii'))
        except (SigningError, OSError, PGPError, UnsupportedAlgorithm, ValueError, TypeError) as e:
            raise SigningError(f"Cannot create signature {output_path}: {e}") from e

        logger.debug("Signature written to %s", output_path)


def _write_atomically(path: Path, data: bytes) -> None:
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix='.tmp', dir=str(path.parent))
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        # mkstemp creates owner-only files; signatures are public
        os.chmod(temp_name, 0o644)
        os.replace(temp_name, path)
    except BaseException:
        try:
            os.unlink(temp_name)
        except FileNotFoundError:
            pass
        raise
