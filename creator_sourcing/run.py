"""
run.py — CLI entry point for the TikTok creator sourcing pipeline.

Usage:
    # Full run: scrape every seed, filter, dedupe, upsert into Airtable
    python -m creator_sourcing.run --config config/config.yaml

    # Everything except Airtable writes (lookups still happen)
    python -m creator_sourcing.run --dry-run

    # Offline storage: ledger + dataset under ./data instead of Apify
    python -m creator_sourcing.run --storage local --no-airtable

Environment variables:
    APIFY_TOKEN, AIRTABLE_API_KEY, AIRTABLE_BASE_ID
"""

import argparse
import logging
import sys

from creator_sourcing.config import DEFAULT_CONFIG_PATH, STORAGE_BACKENDS, load_config
from creator_sourcing.errors import AuthError, ConfigError
from creator_sourcing.pipeline import run_pipeline


def _setup_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s  %(levelname)-8s  %(name)s  %(message)s',
        datefmt='%H:%M:%S',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )
    # Quieten noisy third-party loggers
    for noisy in ('urllib3', 'requests', 'apify_client', 'httpx'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Find US TikTok creators in a follower band and sync them to Airtable',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Counters reported at the end:
  candidates     records with a usable handle
  passed filter  inside the follower band (and US-looking when required)
  saved          new, unique profiles appended to the dataset
  created/updated Airtable rows written this run

Safe to re-run — handles saved by earlier runs are skipped via the ledger.
        """
    )
    parser.add_argument('--config', default=DEFAULT_CONFIG_PATH,
                        help=f'Path to YAML config (default: {DEFAULT_CONFIG_PATH})')
    parser.add_argument('--dry-run', dest='dry_run', action='store_true', default=None,
                        help='Filter, dedupe and save, but never create/update Airtable rows')
    parser.add_argument('--no-airtable', dest='airtable_enabled', action='store_false', default=None,
                        help='Disable Airtable sync entirely')
    parser.add_argument('--max-items', dest='max_profiles_per_seed', type=int, metavar='N',
                        help='Max raw records pulled per seed')
    parser.add_argument('--min-followers', dest='min_followers', type=int, metavar='N')
    parser.add_argument('--max-followers', dest='max_followers', type=int, metavar='N')
    parser.add_argument('--no-require-us', dest='require_us', action='store_false', default=None,
                        help='Keep creators regardless of the US check')
    parser.add_argument('--storage', dest='storage_backend', choices=STORAGE_BACKENDS,
                        help='Where the ledger and dataset live')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable DEBUG logging')
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    log = logging.getLogger(__name__)

    overrides = {
        'dry_run':               args.dry_run,
        'airtable_enabled':      args.airtable_enabled,
        'max_profiles_per_seed': args.max_profiles_per_seed,
        'min_followers':         args.min_followers,
        'max_followers':         args.max_followers,
        'require_us':            args.require_us,
        'storage_backend':       args.storage_backend,
    }

    try:
        config = load_config(args.config, overrides=overrides)
        stats = run_pipeline(config)
        print(f'\n✅  Done — {stats.saved} saved from {stats.candidates} candidates')
        sys.exit(0)

    except ConfigError as e:
        log.error(f'Configuration error: {e}')
        sys.exit(1)
    except AuthError as e:
        log.error(f'Airtable rejected the credentials — aborting: {e}')
        sys.exit(1)
    except KeyboardInterrupt:
        print('\n\n⚠️  Interrupted. Re-run to resume (saved handles are skipped).')
        sys.exit(1)
    except Exception as e:
        log.error(f'Fatal error: {e}', exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
