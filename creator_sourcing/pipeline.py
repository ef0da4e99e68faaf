"""
pipeline.py — Drive seeds through the scraper and each record through
normalize → filter → dedupe → Airtable → dataset.

Seed flow:
  PENDING → INVOKED → DATASET_READY | DATASET_MISSING | PRODUCER_FAILED → DRAINED

Record flow (process_record):
  1  normalize()            → CanonicalProfile; no handle → dropped
  2  passes_filter()        → follower band + US check
  3  ledger.has()           → already emitted (this run or an earlier one)
  4  store.upsert/lookup()  → Airtable sync, failures logged and counted
  5  sink.push_data()       → dataset row, then ledger.mark_seen()

Everything runs strictly one seed and one record at a time, so the ledger's
check-then-mark and Airtable's find-then-write never interleave. A failing
seed or record is logged and skipped; only ConfigError (before the run) and
AuthError (Airtable rejected the token) stop the run.

run_pipeline() wires the real Apify / Airtable collaborators from config.
"""

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional

from creator_sourcing import airtable_client
from creator_sourcing.errors import AuthError
from creator_sourcing.filters import passes_filter
from creator_sourcing.ledger import DedupeLedger
from creator_sourcing.normalize import normalize

log = logging.getLogger(__name__)

TERM = 'term'
HASHTAG = 'hashtag'

# process_record() outcomes
DROPPED = 'dropped'
FILTERED = 'filtered'
DUPLICATE = 'duplicate'
EXISTS_IN_STORE = 'exists_in_store'
SAVED = 'saved'


@dataclass(frozen=True)
class Seed:
    kind: str      # term | hashtag
    value: str


def build_seeds(search_terms, hashtags) -> list[Seed]:
    """Search terms first, then hashtags (leading '#' stripped). Blank values are skipped."""
    seeds = []
    for term in search_terms or []:
        term = (term or '').strip()
        if term:
            seeds.append(Seed(TERM, term))
    for tag in hashtags or []:
        tag = (tag or '').strip().lstrip('#')
        if tag:
            seeds.append(Seed(HASHTAG, tag))
    return seeds


class SeedState(str, Enum):
    PENDING = 'pending'
    INVOKED = 'invoked'
    DATASET_READY = 'dataset_ready'
    DATASET_MISSING = 'dataset_missing'
    PRODUCER_FAILED = 'producer_failed'
    DRAINED = 'drained'


@dataclass
class SeedReport:
    seed: Seed
    state: SeedState = SeedState.PENDING
    items: int = 0
    error: Optional[str] = None


@dataclass
class RunStats:
    candidates: int = 0
    passed_filter: int = 0
    duplicates: int = 0
    saved: int = 0
    store_created: int = 0
    store_updated: int = 0
    store_existing: int = 0
    store_failed: int = 0
    seeds_failed: int = 0
    seeds_missing: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class Pipeline:
    """
    One run over all configured seeds.

    Args:
        config:    PipelineConfig
        producer:  object with invoke(seed, max_items) and fetch_items(dataset_id, limit)
        kv_store:  object with get_value / set_value (holds the ledger)
        sink:      object with push_data(record)
        store:     AirtableClient, or None when Airtable sync is off
    """

    def __init__(self, config, producer, kv_store, sink, store=None):
        self.config = config
        self.producer = producer
        self.kv_store = kv_store
        self.sink = sink
        self.store = store
        self.ledger: Optional[DedupeLedger] = None
        self.stats = RunStats()
        self.reports: list[SeedReport] = []
        self._unpersisted = 0

    # ------------------------------------------------------------------ #
    # Run
    # ------------------------------------------------------------------ #

    def run(self) -> RunStats:
        cfg = self.config
        seeds = build_seeds(cfg.search_terms, cfg.hashtags)

        log.info('=' * 60)
        log.info('TIKTOK CREATOR SOURCING')
        log.info('=' * 60)
        log.info(f'  Seeds:         {len(seeds)}')
        log.info(f'  Items / seed:  {cfg.max_profiles_per_seed}')
        log.info(f'  Followers:     {cfg.min_followers:,} – {cfg.max_followers:,}')
        log.info(f'  Require US:    {cfg.require_us}')
        log.info(f'  Airtable:      {self._store_mode()}')
        log.info(f'  Dry run:       {cfg.dry_run}')

        self.ledger = DedupeLedger.load(self.kv_store, cfg.kv_store_key)

        try:
            for i, seed in enumerate(seeds, 1):
                log.info(f'[{i}/{len(seeds)}] Seed: {seed.kind} → {seed.value}')
                self.reports.append(self.run_seed(seed))
        finally:
            self.ledger.persist()
            self._unpersisted = 0
            log.info(f'Ledger saved ({len(self.ledger)} handles)')

        self._log_summary()
        return self.stats

    def run_seed(self, seed: Seed) -> SeedReport:
        report = SeedReport(seed)
        limit = self.config.max_profiles_per_seed

        report.state = SeedState.INVOKED
        try:
            dataset_id = self.producer.invoke(seed, limit)
            if not dataset_id:
                report.state = SeedState.DATASET_MISSING
                self.stats.seeds_missing += 1
                log.warning(f'  No dataset returned for seed "{seed.value}" — skipping')
                return report
            items = self.producer.fetch_items(dataset_id, limit)
        except Exception as e:
            # ProducerError from ApifyProducer; anything else is treated the same
            report.state = SeedState.PRODUCER_FAILED
            report.error = str(e)
            self.stats.seeds_failed += 1
            log.warning(f'  Producer failed for seed "{seed.value}": {e}')
            return report

        report.state = SeedState.DATASET_READY
        report.items = len(items)
        if not items:
            log.warning(f'  No items for seed "{seed.value}".')

        for raw in items:
            try:
                self.process_record(raw)
            except AuthError:
                raise
            except Exception as e:
                log.error(f'  Error processing record: {e}', exc_info=True)

        report.state = SeedState.DRAINED
        return report

    # ------------------------------------------------------------------ #
    # Single record
    # ------------------------------------------------------------------ #

    def process_record(self, raw: dict) -> str:
        """Run one raw record through every stage; returns the outcome name."""
        profile = normalize(raw)
        if not profile.handle:
            return DROPPED

        self.stats.candidates += 1

        if not passes_filter(profile, self.config):
            return FILTERED
        self.stats.passed_filter += 1

        if self.ledger.has(profile.handle):
            self.stats.duplicates += 1
            return DUPLICATE

        if self.store is not None and not self._sync(profile):
            return EXISTS_IN_STORE

        self.sink.push_data(profile.to_record())
        self.ledger.mark_seen(profile.handle)
        self.stats.saved += 1
        log.info(f'  Saved {profile.handle} ({profile.follower_count:,} followers)')

        self._maybe_persist()
        return SAVED

    def _sync(self, profile) -> bool:
        """
        Airtable step. Returns False only when the record should be dropped
        (check-only mode with skip_existing and a row already present).
        """
        cfg = self.config

        if cfg.airtable_upsert:
            result = self.store.upsert(profile, dry_run=cfg.dry_run)
            if result.outcome == airtable_client.CREATED:
                self.stats.store_created += 1
            elif result.outcome == airtable_client.UPDATED:
                self.stats.store_updated += 1
            elif result.outcome == airtable_client.FAILED:
                self.stats.store_failed += 1
                log.warning(f'  Airtable sync failed for {profile.handle}: {result.error}')
            else:
                log.info(f'  Airtable (dry run): {result.outcome} {profile.handle}')
            return True

        result = self.store.lookup(profile.handle)
        if not result.ok:
            self.stats.store_failed += 1
            log.warning(f'  Airtable lookup failed for {profile.handle}: {result.error}')
            return True
        if result.found:
            self.stats.store_existing += 1
            if cfg.airtable_skip_existing:
                log.debug(f'  {profile.handle} already in Airtable — skipping')
                return False
        return True

    def _maybe_persist(self):
        every = self.config.persist_every
        if not every:
            return
        self._unpersisted += 1
        if self._unpersisted >= every:
            self.ledger.persist()
            self._unpersisted = 0

    # ------------------------------------------------------------------ #
    # Reporting
    # ------------------------------------------------------------------ #

    def _store_mode(self) -> str:
        if self.store is None:
            return 'off'
        return 'upsert' if self.config.airtable_upsert else 'check only'

    def _log_summary(self):
        s = self.stats
        log.info('')
        log.info('─' * 60)
        log.info('PIPELINE COMPLETE')
        log.info(f'  Candidates scanned:       {s.candidates}')
        log.info(f'  Passed filters:           {s.passed_filter}')
        log.info(f'  Duplicates skipped:       {s.duplicates}')
        log.info(f'  Saved (unique, filtered): {s.saved}')
        if self.store is not None:
            log.info(f'  Airtable created: {s.store_created}, updated: {s.store_updated}, '
                     f'existing: {s.store_existing}, failed: {s.store_failed}')
        if s.seeds_failed or s.seeds_missing:
            log.info(f'  Seeds failed: {s.seeds_failed}, without dataset: {s.seeds_missing}')
        if self.config.dry_run:
            log.info('  ⚠️  DRY RUN — nothing written to Airtable')


# ------------------------------------------------------------------ #
# Wiring
# ------------------------------------------------------------------ #

def run_pipeline(config) -> RunStats:
    """Build the real collaborators from a validated PipelineConfig and run once."""
    from apify_client import ApifyClient

    from creator_sourcing.producer import ApifyProducer
    from creator_sourcing.storage import (
        ApifyDatasetSink, ApifyKeyValueStore, LocalDatasetSink, LocalKeyValueStore,
    )

    client = ApifyClient(config.apify_token)
    producer = ApifyProducer(
        client,
        actor_id=config.actor_id,
        actor_input=config.actor_input,
        timeout_secs=config.actor_timeout_secs,
    )

    if config.storage_backend == 'local':
        kv_store = LocalKeyValueStore(config.local_dir, config.kv_store_name)
        sink = LocalDatasetSink(config.local_dir, config.dataset_name)
    else:
        kv_store = ApifyKeyValueStore(client, config.kv_store_name)
        sink = ApifyDatasetSink(client, config.dataset_name)

    store = None
    if config.airtable_enabled:
        store = airtable_client.AirtableClient(
            api_key=config.airtable_api_key,
            base_id=config.airtable_base_id,
            table=config.airtable_table,
            handle_field=config.airtable_handle_field,
            pause=config.airtable_pause,
            max_attempts=config.airtable_max_attempts,
        )

    stats = Pipeline(config, producer, kv_store, sink, store=store).run()

    if isinstance(sink, LocalDatasetSink):
        sink.export_csv()
    return stats
