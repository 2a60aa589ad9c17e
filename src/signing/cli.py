"""
Command line entry point: sign files with an OpenPGP key.

    pgp-sign --key-file ~/.gnupg/release.asc --output-dir build dist/app-1.0.tar.gz
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from key_material import KeyMaterialError

from .artifact_signer import SourceArtifact
from .config import SigningConfig
from .errors import SignError
from .log import setup_logging
from .session import SigningSession


def artifact_from_path(path: Path, version: Optional[str] = None,
                       classifier: Optional[str] = None) -> SourceArtifact:
    """Map a file to artifact coordinates: name without the last suffix, and that suffix."""
    suffix = path.suffix
    if suffix:
        return SourceArtifact(path.name[:-len(suffix)], suffix[1:], path, version, classifier)
    return SourceArtifact(path.name, '', path, version, classifier)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='pgp-sign', description='Create detached OpenPGP signatures for files')
    parser.add_argument('files', nargs='+', type=Path, help='files to sign')
    parser.add_argument('--config', type=Path, help='YAML configuration file')
    parser.add_argument('--key-id', help='hex id of the signing key (env SIGN_KEY_ID)')
    parser.add_argument('--key-file', help='secret key file (env SIGN_KEY holds key content)')
    parser.add_argument('--server-id', help='settings store record holding key id, passphrase and key file')
    parser.add_argument('--settings', dest='settings_file', help='YAML settings store')
    parser.add_argument('--output-dir', dest='output_directory', help='directory for signature files')
    parser.add_argument('--project-version', help='artifact version, added to file names with --with-version')
    parser.add_argument('--classifier', help='classifier added to signature file names')
    parser.add_argument('--skip-no-key', action='store_true', default=None,
                        help='do nothing if no key is available')
    parser.add_argument('--with-version', dest='include_version', action='store_true', default=None,
                        help='add the project version to signature file names')
    parser.add_argument('--fail-on-missing-key-file', dest='missing_key_file', action='store_const',
                        const='fail', help='treat a missing key file as an error')
    parser.add_argument('--workers', dest='max_workers', type=int, help='parallel signing workers')
    parser.add_argument('-v', '--verbose', action='store_true', help='debug logging')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = SigningConfig.from_yaml(args.config) if args.config else SigningConfig()
        config = config.with_overrides(
            key_id=args.key_id,
            key_file=args.key_file,
            server_id=args.server_id,
            settings_file=args.settings_file,
            output_directory=args.output_directory,
            skip_no_key=args.skip_no_key,
            include_version=args.include_version,
            missing_key_file=args.missing_key_file,
            max_workers=args.max_workers,
        )
    except (OSError, ValueError) as e:
        parser.error(str(e))

    artifacts = [artifact_from_path(path, args.project_version, args.classifier) for path in args.files]

    try:
        with SigningSession(config) as session:
            results = session.sign_artifacts(artifacts)
    except (KeyMaterialError, SignError, OSError) as e:
        logging.getLogger('signing').error("%s", e)
        return 1

    for result in results:
        print(result.path)
    return 0


if __name__ == '__main__':
    sys.exit(main())
