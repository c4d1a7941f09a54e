"""
Command-line interface for the SigV4 signing SDK
Signs requests, produces presigned URLs and shows canonical requests
"""

import argparse
import json
import os
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from . import __version__
from .config.unified_config import DEFAULT_REGION_ENV, REGION_ENV, SERVICE_ENV, UnifiedConfigManager
from .exceptions import InvalidRequestError, SigV4Error
from .identity import EnvironmentCredentialsResolver, resolve_credentials
from .signing.clock import FixedClock
from .signing.signing_config import SIGNING_PROFILES, create_signing_config
from .signing.sigv4_signer import RequestSigner
from .signing.types import DEFAULT_PRESIGN_EXPIRES, SignableRequest, SigningConfig
from .signing.utils import parse_amz_datetime


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog='smithy-sigv4',
        description='AWS Signature Version 4 signing from the command line'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'smithy-sigv4 {__version__}'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    setup_sign_parser(subparsers)
    setup_presign_parser(subparsers)
    setup_canonical_parser(subparsers)

    return parser


def add_signing_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by every subcommand."""
    parser.add_argument('--config', help='Unified configuration file (JSON)')
    parser.add_argument('--environment', help='Environment within the configuration file')
    parser.add_argument('--region', help=f'Signing region (default: ${REGION_ENV} or ${DEFAULT_REGION_ENV})')
    parser.add_argument('--service', help=f'Signing service name (default: ${SERVICE_ENV})')
    parser.add_argument(
        '--profile',
        choices=sorted(SIGNING_PROFILES.keys()),
        help='Signing profile (default: standard)'
    )
    parser.add_argument(
        '--timestamp',
        help='Sign at a fixed time, YYYYMMDDTHHMMSSZ (default: now)'
    )
    parser.add_argument(
        '-H', '--header',
        action='append',
        default=[],
        metavar='NAME:VALUE',
        help='Request header (repeatable)'
    )


def add_body_arguments(parser: argparse.ArgumentParser) -> None:
    body_group = parser.add_mutually_exclusive_group()
    body_group.add_argument('--data', help='Request body as a string')
    body_group.add_argument('--data-file', help='Read the request body from a file')


def setup_sign_parser(subparsers):
    """Setup sign subcommand."""
    sign_parser = subparsers.add_parser('sign', help='Sign a request and print its headers')
    sign_parser.add_argument('method', help='HTTP method')
    sign_parser.add_argument('url', help='Request URL')
    add_signing_arguments(sign_parser)
    add_body_arguments(sign_parser)
    sign_parser.add_argument(
        '--format',
        choices=['text', 'json'],
        help='Output format (default: from --config, else text)'
    )
    sign_parser.add_argument(
        '--show-canonical',
        action='store_true',
        help='Also print the canonical request and string to sign'
    )


def setup_presign_parser(subparsers):
    """Setup presign subcommand."""
    presign_parser = subparsers.add_parser('presign', help='Print a presigned URL')
    presign_parser.add_argument('url', help='Request URL')
    presign_parser.add_argument('--method', default='GET', help='HTTP method (default: GET)')
    presign_parser.add_argument(
        '--expires',
        type=int,
        help=f'Validity in seconds (default: from --config, else {DEFAULT_PRESIGN_EXPIRES})'
    )
    add_signing_arguments(presign_parser)


def setup_canonical_parser(subparsers):
    """Setup canonical subcommand."""
    canonical_parser = subparsers.add_parser(
        'canonical',
        help='Print the canonical request without signing'
    )
    canonical_parser.add_argument('method', help='HTTP method')
    canonical_parser.add_argument('url', help='Request URL')
    add_signing_arguments(canonical_parser)
    add_body_arguments(canonical_parser)


def parse_header_arguments(values: List[str]) -> List[Tuple[str, str]]:
    """Parse NAME:VALUE header arguments."""
    headers = []
    for value in values:
        name, separator, header_value = value.partition(':')
        if not separator or not name.strip():
            raise InvalidRequestError(
                f"Header must be NAME:VALUE, got {value!r}",
                details={"header": value}
            )
        headers.append((name.strip(), header_value.strip()))
    return headers


def read_body(args) -> Optional[bytes]:
    if getattr(args, 'data', None) is not None:
        return args.data.encode('utf-8')
    if getattr(args, 'data_file', None):
        return Path(args.data_file).read_bytes()
    return None


def load_config_manager(args) -> Optional[UnifiedConfigManager]:
    """Load the unified configuration file named by --config, if any."""
    if not args.config:
        return None
    manager = UnifiedConfigManager.from_file(args.config, args.environment)
    manager.apply_logging()
    return manager


def build_signing_config(args, manager: Optional[UnifiedConfigManager] = None) -> SigningConfig:
    """Build the signing configuration from a config file, flags and the environment."""
    clock = FixedClock(parse_amz_datetime(args.timestamp)) if args.timestamp else None

    if manager is not None:
        config = manager.to_signing_config(clock, profile=args.profile)
        overrides = {}
        if args.region:
            overrides['region'] = args.region
        if args.service:
            overrides['service'] = args.service
        return config.with_overrides(**overrides) if overrides else config

    builder = create_signing_config().profile(args.profile or 'standard')
    region = args.region or os.environ.get(REGION_ENV) or os.environ.get(DEFAULT_REGION_ENV)
    service = args.service or os.environ.get(SERVICE_ENV)
    if region:
        builder.region(region)
    if service:
        builder.service(service)
    if clock is not None:
        builder.clock(clock)
    return builder.build()


def build_signer(args) -> Tuple[RequestSigner, Optional[UnifiedConfigManager]]:
    """Create a signer whose key cache follows the configured retention."""
    manager = load_config_manager(args)
    config = build_signing_config(args, manager)
    key_cache = manager.create_key_cache(config.clock) if manager is not None else None
    return RequestSigner(config, key_cache=key_cache), manager


def build_request(args) -> SignableRequest:
    return SignableRequest(
        method=args.method,
        url=args.url,
        headers=parse_header_arguments(args.header),
        body=read_body(args)
    )


def handle_sign_command(args) -> int:
    """Handle sign command."""
    signer, manager = build_signer(args)
    credentials = resolve_credentials(EnvironmentCredentialsResolver())
    signed = signer.sign_request(build_request(args), credentials)

    output_format = args.format or (manager.get_output_format() if manager is not None else 'text')
    if output_format == 'json':
        output = {
            'method': signed.method,
            'url': signed.url,
            'headers': signed.headers,
            'signature': signed.signature,
        }
        if args.show_canonical:
            output['canonical_request'] = signed.canonical_request.to_string()
            output['string_to_sign'] = signed.string_to_sign
        print(json.dumps(output, indent=2))
        return 0

    for name, value in signed.headers.items():
        print(f"{name}: {value}")
    if args.show_canonical:
        print()
        print("# Canonical request")
        print(signed.canonical_request.to_string())
        print()
        print("# String to sign")
        print(signed.string_to_sign)
    return 0


def handle_presign_command(args) -> int:
    """Handle presign command."""
    signer, manager = build_signer(args)
    credentials = resolve_credentials(EnvironmentCredentialsResolver())
    expires = args.expires
    if expires is None:
        expires = manager.get_signing_settings().presign_expires if manager is not None else DEFAULT_PRESIGN_EXPIRES
    request = SignableRequest(
        method=args.method,
        url=args.url,
        headers=parse_header_arguments(args.header)
    )
    print(signer.presign_request(request, credentials, expires).url)
    return 0


def handle_canonical_command(args) -> int:
    """Handle canonical command."""
    signer, _ = build_signer(args)
    canonical = signer.canonical_builder.build(build_request(args))
    print(canonical.to_string())
    print()
    print(f"# SHA-256: {canonical.hash()}")
    return 0


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for the CLI

    Args:
        argv: Command line arguments (None to use sys.argv)

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == 'sign':
            return handle_sign_command(args)
        elif args.command == 'presign':
            return handle_presign_command(args)
        elif args.command == 'canonical':
            return handle_canonical_command(args)
        else:
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 130
    except SigV4Error as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
