"""
Artifact Signer Module

Signs build artifacts. A variant provider may replace an artifact with one
or more transformed variants (repackaged, re-encoded...); in that case each
variant is signed instead of the source artifact.
"""

import io
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterable, List, Optional, Union

from .errors import ArtifactError, SigningError
from .signature_engine import SignatureEngine

logger = logging.getLogger(__name__)

SIGNATURE_EXTENSION = 'asc'


class SourceArtifact:
    """A build output file to be signed."""

    def __init__(self,
                 artifact_id: str,
                 extension: str,
                 path: Optional[Union[str, Path]],
                 version: Optional[str] = None,
                 classifier: Optional[str] = None):
        self.artifact_id = artifact_id
        self.extension = extension
        self.path = Path(path) if path is not None else None
        self.version = version
        self.classifier = classifier

    def __repr__(self) -> str:
        parts = [self.artifact_id, self.version, self.classifier, self.extension]
        return 'SourceArtifact(' + ':'.join(p for p in parts if p) + ')'

    def identity_variant(self) -> 'ArtifactVariant':
        if self.path is None:
            raise ArtifactError(f"Artifact: {self!r} has no file")
        return ArtifactVariant.from_file(self.artifact_id, self.extension, self.path,
                                         classifier=self.classifier, version=self.version)


class ArtifactVariant:
    """One physical form of an artifact: naming coordinates plus a content stream opener."""

    def __init__(self,
                 artifact_id: str,
                 extension: str,
                 opener: Callable[[], BinaryIO],
                 classifier: Optional[str] = None,
                 version: Optional[str] = None):
        self.artifact_id = artifact_id
        self.extension = extension
        self.classifier = classifier
        self.version = version
        self._opener = opener

    def __repr__(self) -> str:
        return (f"ArtifactVariant({self.artifact_id!r}, classifier={self.classifier!r}, "
                f"extension={self.extension!r})")

    @classmethod
    def from_file(cls, artifact_id: str, extension: str, path: Union[str, Path],
                  classifier: Optional[str] = None, version: Optional[str] = None) -> 'ArtifactVariant':
        path = Path(path)
        return cls(artifact_id, extension, lambda: open(path, 'rb'), classifier, version)

    @classmethod
    def from_bytes(cls, artifact_id: str, extension: str, content: bytes,
                   classifier: Optional[str] = None, version: Optional[str] = None) -> 'ArtifactVariant':
        return cls(artifact_id, extension, lambda: io.BytesIO(content), classifier, version)

    def open(self) -> BinaryIO:
        return self._opener()


class VariantProvider(ABC):
    """Looks up the transformed variants that replace a source artifact."""

    @abstractmethod
    def variants_for(self, artifact: SourceArtifact) -> List[ArtifactVariant]:
        """Return derived variants in signing order, or an empty list to sign the artifact itself."""
        pass


class NoTransformation(VariantProvider):
    """Variant provider for builds without content transformation."""

    def variants_for(self, artifact: SourceArtifact) -> List[ArtifactVariant]:
        return []


@dataclass(frozen=True)
class NamingPolicy:
    """Controls whether the version segment appears in signature file names."""
    include_version: bool = False


def signature_file_name(artifact_id: str,
                        extension: str,
                        classifier: Optional[str] = None,
                        version: Optional[str] = None) -> str:
    """Build `artifactId[-version][-classifier].extension.asc`."""
    name = artifact_id
    if version:
        name += '-' + version
    if classifier:
        name += '-' + classifier
    return f"{name}.{extension}.{SIGNATURE_EXTENSION}"


class SignatureResult:
    """A produced signature file, ready to be attached to the build result."""

    def __init__(self, classifier: Optional[str], extension: str, path: Path):
        self.classifier = classifier
        self.extension = extension
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"SignatureResult(classifier={self.classifier!r}, extension={self.extension!r}, path={str(self.path)!r})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, SignatureResult):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert signature result to dictionary format."""
        return {
            'classifier': self.classifier,
            'extension': self.extension,
            'path': str(self.path)
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


class ArtifactSigner:
    """Signs source artifacts, or their transformed variants, into an output directory."""

    def __init__(self,
                 engine: SignatureEngine,
                 output_directory: Union[str, Path],
                 variant_provider: Optional[VariantProvider] = None,
                 naming: Optional[NamingPolicy] = None):
        """
        Initialize the artifact signer.

        Args:
            engine: Signature engine holding the loaded signing key
            output_directory: Directory receiving the signature files
            variant_provider: Source of transformed variants (none by default)
            naming: File naming policy
        """
        self.engine = engine
        self.output_directory = Path(output_directory)
        self.variant_provider = variant_provider or NoTransformation()
        self.naming = naming or NamingPolicy()

    def sign_artifact(self, artifact: SourceArtifact) -> List[SignatureResult]:
        """
        Sign an artifact.

        Args:
            artifact: Source artifact

        Returns:
            One SignatureResult per signed variant, in variant order
        """
        if artifact is None:
            raise ArtifactError("Artifact to sign is missing")
        logger.info("Signing artifact: %r", artifact)

        variants = list(self.variant_provider.variants_for(artifact))
        if not variants:
            variants = [artifact.identity_variant()]

        return [self.sign_variant(variant, default_version=artifact.version) for variant in variants]

    def sign_variant(self, variant: ArtifactVariant, default_version: Optional[str] = None) -> SignatureResult:
        version = variant.version if variant.version is not None else default_version
        target_ext = f"{variant.extension}.{SIGNATURE_EXTENSION}"
        target = self.output_directory / signature_file_name(
            variant.artifact_id,
            variant.extension,
            classifier=variant.classifier,
            version=version if self.naming.include_version else None,
        )

        try:
            stream = variant.open()
        except OSError as e:
            raise SigningError(f"Cannot read content of {variant!r}: {e}") from e

        with stream:
            self.engine.sign(stream, target)

        return SignatureResult(variant.classifier, target_ext, target)

    def sign_artifacts(self, artifacts: Iterable[SourceArtifact]) -> List[SignatureResult]:
        """Sign several artifacts sequentially; the first failure stops the run."""
        results = []
        for artifact in artifacts:
            results.extend(self.sign_artifact(artifact))
        return results
