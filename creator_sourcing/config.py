"""
config.py — Load and validate pipeline settings.

Settings come from three places, later ones winning:
  1. defaults below
  2. config/config.yaml (sections: seeds, filters, dedupe, airtable,
     producer, storage, plus top-level dry_run)
  3. CLI overrides passed to load_config()

Secrets are read from the environment only:
  AIRTABLE_API_KEY, AIRTABLE_BASE_ID, APIFY_TOKEN
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from creator_sourcing.errors import ConfigError
from creator_sourcing.producer import DEFAULT_ACTOR_ID, DEFAULT_TIMEOUT_SECS

log = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = 'config/config.yaml'
STORAGE_BACKENDS = ('apify', 'local')

DEFAULT_SEARCH_TERMS = [
    'amazon finds',
    'etsy finds',
    'makeup review',
    'drop shipping',
    'coupon codes',
    'amazon must haves',
]
DEFAULT_HASHTAGS = ['amazonfinds', 'makeupreview', 'tiktokmademebuyit']


def _string_list(value, name: str) -> list:
    """A YAML scalar becomes a one-item list; every item must be a string."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f'{name} must be a list of strings')
    for item in value:
        if not isinstance(item, str):
            raise ConfigError(f'{name} must be a list of strings, got {item!r}')
    return list(value)


@dataclass
class PipelineConfig:
    # Seeds
    search_terms: list = field(default_factory=lambda: list(DEFAULT_SEARCH_TERMS))
    hashtags: list = field(default_factory=lambda: list(DEFAULT_HASHTAGS))
    max_profiles_per_seed: int = 200

    # Filters
    min_followers: int = 10_000
    max_followers: int = 100_000
    require_us: bool = True

    # Dedupe ledger
    kv_store_name: str = 'tiktok-dedupe'
    kv_store_key: str = 'seenUsernames'
    persist_every: int = 0          # 0 = only at the end of the run

    # Airtable
    airtable_enabled: bool = True
    airtable_api_key: Optional[str] = field(default=None, repr=False)
    airtable_base_id: Optional[str] = None
    airtable_table: str = 'Creators'
    airtable_handle_field: str = 'Handle'
    airtable_upsert: bool = True
    airtable_skip_existing: bool = False
    airtable_pause: float = 0.22
    airtable_max_attempts: int = 3

    # Producer
    actor_id: str = DEFAULT_ACTOR_ID
    actor_input: dict = field(default_factory=dict)
    actor_timeout_secs: int = DEFAULT_TIMEOUT_SECS
    apify_token: Optional[str] = field(default=None, repr=False)

    # Storage
    storage_backend: str = 'apify'
    local_dir: str = 'data'
    dataset_name: str = 'tiktok-creators'

    dry_run: bool = False

    @classmethod
    def from_dict(cls, cfg: Optional[dict], env: Optional[dict] = None) -> 'PipelineConfig':
        """Build from the YAML structure; unknown keys are ignored."""
        cfg = cfg or {}
        env = os.environ if env is None else env
        seeds = cfg.get('seeds') or {}
        filters = cfg.get('filters') or {}
        dedupe = cfg.get('dedupe') or {}
        airtable = cfg.get('airtable') or {}
        producer = cfg.get('producer') or {}
        storage = cfg.get('storage') or {}
        d = cls()

        def pick(section: dict, key: str, default):
            value = section.get(key)
            return default if value is None else value

        return cls(
            search_terms=_string_list(pick(seeds, 'search_terms', d.search_terms), 'seeds.search_terms'),
            hashtags=_string_list(pick(seeds, 'hashtags', d.hashtags), 'seeds.hashtags'),
            max_profiles_per_seed=int(pick(seeds, 'max_profiles_per_seed', d.max_profiles_per_seed)),
            min_followers=int(pick(filters, 'min_followers', d.min_followers)),
            max_followers=int(pick(filters, 'max_followers', d.max_followers)),
            require_us=bool(pick(filters, 'require_us', d.require_us)),
            kv_store_name=pick(dedupe, 'kv_store_name', d.kv_store_name),
            kv_store_key=pick(dedupe, 'kv_store_key', d.kv_store_key),
            persist_every=int(pick(dedupe, 'persist_every', d.persist_every)),
            airtable_enabled=bool(pick(airtable, 'enabled', d.airtable_enabled)),
            airtable_api_key=env.get('AIRTABLE_API_KEY') or None,
            airtable_base_id=env.get('AIRTABLE_BASE_ID') or airtable.get('base_id') or None,
            airtable_table=pick(airtable, 'table', d.airtable_table),
            airtable_handle_field=pick(airtable, 'handle_field', d.airtable_handle_field),
            airtable_upsert=bool(pick(airtable, 'upsert', d.airtable_upsert)),
            airtable_skip_existing=bool(pick(airtable, 'skip_existing', d.airtable_skip_existing)),
            airtable_pause=float(pick(airtable, 'rate_limit_pause', d.airtable_pause)),
            airtable_max_attempts=int(pick(airtable, 'max_attempts', d.airtable_max_attempts)),
            actor_id=pick(producer, 'actor_id', d.actor_id),
            actor_input=dict(pick(producer, 'actor_input', d.actor_input)),
            actor_timeout_secs=int(pick(producer, 'timeout_secs', d.actor_timeout_secs)),
            apify_token=env.get('APIFY_TOKEN') or None,
            storage_backend=pick(storage, 'backend', d.storage_backend),
            local_dir=pick(storage, 'local_dir', d.local_dir),
            dataset_name=pick(storage, 'dataset_name', d.dataset_name),
            dry_run=bool(cfg.get('dry_run', d.dry_run)),
        )

    def apply_overrides(self, overrides: Optional[dict]):
        """Set attributes from CLI overrides; None means "not given"."""
        for key, value in (overrides or {}).items():
            if value is None:
                continue
            if not hasattr(self, key):
                raise ConfigError(f'Unknown setting: {key}')
            setattr(self, key, value)

    def validate(self):
        """Raise ConfigError for settings the pipeline cannot run with."""
        if self.min_followers < 0 or self.max_followers < self.min_followers:
            raise ConfigError(
                f'Follower band is invalid: [{self.min_followers}, {self.max_followers}]'
            )
        if self.max_profiles_per_seed <= 0:
            raise ConfigError('max_profiles_per_seed must be positive')
        if self.persist_every < 0:
            raise ConfigError('persist_every must be 0 or positive')
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ConfigError(
                f'Unknown storage backend {self.storage_backend!r} '
                f'(expected one of {", ".join(STORAGE_BACKENDS)})'
            )
        if self.airtable_enabled and not (self.airtable_api_key and self.airtable_base_id):
            raise ConfigError(
                'Airtable is enabled but AIRTABLE_API_KEY or AIRTABLE_BASE_ID is not set. '
                'Set them or disable sync with --no-airtable.'
            )
        if not self.apify_token:
            raise ConfigError('APIFY_TOKEN is not set (needed to run the scraper actor)')


def load_config(path: Optional[str] = DEFAULT_CONFIG_PATH,
                overrides: Optional[dict] = None,
                env: Optional[dict] = None) -> PipelineConfig:
    """Read YAML (if it exists), apply overrides, validate."""
    raw = {}
    if path:
        config_path = Path(path)
        if config_path.exists():
            with open(config_path, 'r', encoding='utf-8') as f:
                try:
                    raw = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigError(f'Invalid YAML in {config_path}: {e}') from e
            if not isinstance(raw, dict):
                raise ConfigError(f'{config_path} must contain a mapping at the top level')
            log.info(f'Loaded config from {config_path}')
        else:
            log.warning(f'Config file {config_path} not found — using defaults')

    try:
        config = PipelineConfig.from_dict(raw, env=env)
    except (TypeError, ValueError) as e:
        raise ConfigError(f'Invalid config value: {e}') from e

    config.apply_overrides(overrides)
    config.validate()
    return config
