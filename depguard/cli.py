"""Command line entry point"""

import argparse
import json
import logging
import sys
from typing import List

from depguard import __version__
from depguard.audit import Auditor
from depguard.config import DEFAULT_CONFIG
from depguard.http import TargetValidationError
from depguard.models import AuditPhase, ResourceEntry
from depguard.report import generate_report

logger = logging.getLogger(__name__)


def load_har_resources(path: str) -> List[ResourceEntry]:
    """Resource entries from a browser HAR export"""
    with open(path, 'r', encoding='utf-8') as f:
        har = json.load(f)

    resources = []
    for entry in har.get('log', {}).get('entries', []):
        url = entry.get('request', {}).get('url')
        if not url:
            continue
        initiator = entry.get('_initiator') or {}
        initiator_type = entry.get('_resourceType') or initiator.get('type') or ''
        resources.append(ResourceEntry(url, initiator_type))
    return resources


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def positive_float(value: str) -> float:
    number = float(value)
    if not number > 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='depguard',
        description='Find npm packages a live web application depends on and flag\n'
        'dependency confusion, suspicious packages and exposed config files.\n'
        'IMPORTANT: Only scan websites you have permission to test.',
        epilog='Example: depguard https://example.com -o results.json',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('url', nargs='?', help='URL to audit')
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    parser.add_argument('-o', '--output', help='Output file for JSON results')
    parser.add_argument('--batch', help='File containing URLs to audit (one per line)')
    parser.add_argument('--har', help='HAR export of the page load, used as resource timing data')
    parser.add_argument('--timeout', type=positive_float, help='Per-request timeout in seconds (default: 8)')
    parser.add_argument('--rate-limit', type=positive_int,
                        help='Registry requests allowed per minute (default: 50)')
    parser.add_argument('--min-downloads', type=int,
                        help='Weekly downloads below which a package without a repository is HIGH risk '
                             '(default: 100)')
    parser.add_argument('--no-probe', action='store_true', help='Skip the exposed file probe')
    parser.add_argument('--no-validate', action='store_true',
                        help='Allow private, loopback and unresolvable targets, assets and redirects')
    parser.add_argument('--suspicious-only', action='store_true',
                        help='Only list suspicious packages in the report')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s - %(levelname)s - %(message)s')

    if not args.url and not args.batch:
        parser.error('a URL or --batch file is required')

    config = DEFAULT_CONFIG.with_overrides(
        request_timeout=args.timeout,
        api_rate_limit=args.rate_limit,
        min_downloads_suspicious=args.min_downloads,
    )

    if args.batch:
        try:
            with open(args.batch, 'r') as f:
                urls_to_scan = [line.strip() for line in f if line.strip()]
        except OSError as e:
            logger.error(f"Error reading batch file: {e}")
            return 1
    else:
        urls_to_scan = [args.url]

    resources = []
    if args.har:
        try:
            resources = load_har_resources(args.har)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading HAR file: {e}")
            return 1

    all_results = []
    exit_code = 0

    for url in urls_to_scan:
        try:
            auditor = Auditor.for_url(url, config, validate=not args.no_validate,
                                      resources=resources,
                                      probe_exposed_files=not args.no_probe)
        except TargetValidationError as e:
            print(f"\n⚠️  ERROR: {e}")
            print(f"Skipping {url}\n")
            all_results.append({'url': url, 'phase': 'error', 'error': str(e)})
            exit_code = max(exit_code, 1)
            continue

        state = auditor.request_audit()
        all_results.append(state.to_dict())
        print(generate_report(state, suspicious_only=args.suspicious_only))
        print()

        if state.phase is AuditPhase.ERROR:
            exit_code = max(exit_code, 1)
        elif state.risk_count or state.suspicious_packages:
            logger.warning(f"⚠️  {url} has supply-chain risks")
            exit_code = max(exit_code, 2)

    if args.output:
        try:
            with open(args.output, 'w') as f:
                json.dump(all_results, f, indent=2)
            logger.info(f"Results saved to {args.output}")
        except OSError as e:
            logger.error(f"Error saving results: {e}")
            return 1

    return exit_code


if __name__ == '__main__':
    sys.exit(main())
