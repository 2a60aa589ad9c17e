"""
Signing Session Module

Ties key resolution, key loading and artifact signing together for one
execution: the key is resolved and loaded exactly once, then shared by all
signing work, which may run on several threads.
"""

import asyncio
import logging
import os
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

from key_material import (
    EnvironmentProvider,
    KeyMaterialResolver,
    KeyUnavailable,
    SettingsStore,
)

from .artifact_signer import ArtifactSigner, NamingPolicy, SignatureResult, SourceArtifact, VariantProvider
from .config import SigningConfig
from .key_loader import KeyRingLoader, LoadedSigningKey
from .signature_engine import SignatureEngine

logger = logging.getLogger(__name__)


class SigningSession:
    """One signing execution: resolve and load the key once, sign many artifacts."""

    def __init__(self,
                 config: Optional[SigningConfig] = None,
                 environment: Optional[EnvironmentProvider] = None,
                 settings_store: Optional[SettingsStore] = None,
                 passphrase_decryptor: Optional[Callable[[str], str]] = None,
                 variant_provider: Optional[VariantProvider] = None,
                 artifact_filter: Optional[Callable[[SourceArtifact], bool]] = None,
                 on_result: Optional[Callable[[SignatureResult], None]] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 home_directory: Optional[Union[str, Path]] = None):
        """
        Args:
            config: Session configuration
            environment: Environment variable provider
            settings_store: Settings store; loaded from config.settings_file when omitted
            passphrase_decryptor: Decrypts encrypted-at-rest passphrases
            variant_provider: Supplies transformed artifact variants
            artifact_filter: Returns False for artifacts that must not be signed
            on_result: Called for each produced signature, e.g. to attach it to the build
            clock: Current time provider for expiration checks and signature timestamps
            home_directory: Home directory used to expand '~/' in key file paths
        """
        self.config = config or SigningConfig()
        self.environment = environment or EnvironmentProvider()
        self.settings_store = settings_store
        self.passphrase_decryptor = passphrase_decryptor
        self.variant_provider = variant_provider
        self.artifact_filter = artifact_filter
        self.on_result = on_result
        self.clock = clock
        self.home_directory = home_directory

        self._opened = False
        self._signing_key: Optional[LoadedSigningKey] = None

    def __enter__(self) -> 'SigningSession':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @property
    def signing_key(self) -> Optional[LoadedSigningKey]:
        return self._signing_key

    @property
    def skipped(self) -> bool:
        """True when no key was available and skip_no_key allowed the session to do nothing."""
        return self._opened and self._signing_key is None

    def _settings(self) -> Optional[SettingsStore]:
        if self.settings_store is None and self.config.settings_file:
            self.settings_store = SettingsStore.from_yaml(self.config.settings_file)
        return self.settings_store

    def open(self) -> Optional[LoadedSigningKey]:
        """
        Resolve key material and load the signing key, once.

        Returns:
            The loaded key, or None when no key is available and skip_no_key is set
        """
        if self._opened:
            return self._signing_key

        resolver = KeyMaterialResolver(
            environment=self.environment,
            settings_store=self._settings(),
            passphrase_decryptor=self.passphrase_decryptor,
            missing_key_file=self.config.missing_key_file_policy,
            home_directory=self.home_directory,
        )
        material = resolver.resolve(self.config.key_material_request())
        try:
            self._signing_key = KeyRingLoader(clock=self.clock).load_material(material)
        except KeyUnavailable:
            if not self.config.skip_no_key:
                raise
            logger.info("Sign key not available, skipping signing")
        finally:
            material.clear()

        self._opened = True
        return self._signing_key

    def close(self) -> None:
        """Scrub the unlocked key material; a later open() loads the key again."""
        if self._signing_key is not None:
            self._signing_key.clear()
        self._signing_key = None
        self._opened = False

    def _artifact_signer(self, signing_key: LoadedSigningKey) -> ArtifactSigner:
        engine = SignatureEngine(signing_key, chunk_size=self.config.chunk_size, clock=self.clock)
        return ArtifactSigner(
            engine,
            self.config.output_directory,
            variant_provider=self.variant_provider,
            naming=NamingPolicy(include_version=self.config.include_version),
        )

    def sign_artifacts(self, artifacts: Iterable[SourceArtifact]) -> List[SignatureResult]:
        """
        Sign artifacts, in parallel when more than one worker is configured.

        Returns:
            Signature results grouped by artifact in input order, each group in
            variant order; empty when signing was skipped

        Raises:
            The first error hit by any worker; pending work is cancelled and
            signatures already written are kept
        """
        signing_key = self.open()
        if signing_key is None:
            return []

        selected = [a for a in artifacts if self.artifact_filter is None or self.artifact_filter(a)]
        signer = self._artifact_signer(signing_key)

        workers = min(self.config.max_workers or os.cpu_count() or 1, max(len(selected), 1))
        if workers == 1:
            groups = [signer.sign_artifact(artifact) for artifact in selected]
        else:
            groups = self._sign_in_parallel(signer, selected, workers)

        results = [result for group in groups for result in group]
        if self.on_result is not None:
            for result in results:
                logger.info("Attach signature: %r", result)
                self.on_result(result)
        return results

    @staticmethod
    def _sign_in_parallel(signer: ArtifactSigner,
                          artifacts: List[SourceArtifact],
                          workers: int) -> List[List[SignatureResult]]:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='sign') as executor:
            futures = [executor.submit(signer.sign_artifact, artifact) for artifact in artifacts]
            _, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in pending:
                future.cancel()
            for future in futures:
                if future.done() and not future.cancelled() and future.exception() is not None:
                    raise future.exception()
            return [future.result() for future in futures]

    async def sign_artifacts_async(self, artifacts: Iterable[SourceArtifact]) -> List[SignatureResult]:
        """Run sign_artifacts on a worker thread so blocking file IO stays off the event loop."""
        return await asyncio.to_thread(self.sign_artifacts, list(artifacts))
