"""
airtable_client.py — Rate-limited Airtable client for the Creators table.

Design principles:
  - One row per creator, keyed by the handle column (default "Handle").
  - Upsert is find-then-write: look the handle up case-insensitively, then
    PATCH the existing row or POST a new one. Not atomic on Airtable's side;
    fine while a single pipeline run is the only writer.
  - Airtable allows ~5 requests/second per base. Every HTTP call is followed
    by a fixed pause (RateGate), success or failure, so consecutive calls are
    spaced out and the first call is never delayed.
  - Transient failures (network, 429, 5xx) are retried a capped number of
    times. A rejected token raises AuthError and is never retried.

Pipeline-facing operations (upsert, lookup) return result objects instead of
raising for record-scoped failures; only AuthError propagates.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

import requests
from tenacity import (
    Retrying, before_sleep_log, retry_if_exception_type,
    stop_after_attempt, wait_exponential,
)

from creator_sourcing.errors import (
    AuthError, StoreError, TransientStoreError, ValidationError,
)

log = logging.getLogger(__name__)

API_ROOT = 'https://api.airtable.com/v0'
DEFAULT_PAUSE = 0.22  # ~4.5 requests/second

# Upsert outcomes
CREATED = 'created'
UPDATED = 'updated'
WOULD_CREATE = 'would_create'
WOULD_UPDATE = 'would_update'
FAILED = 'failed'


@dataclass
class StoreRecord:
    id: str
    fields: dict = field(default_factory=dict)


@dataclass
class StoreResult:
    """Outcome of a check-only lookup."""
    record: Optional[StoreRecord] = None
    error: Optional[StoreError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def found(self) -> bool:
        return self.record is not None


@dataclass
class UpsertResult:
    outcome: str
    record: Optional[StoreRecord] = None
    error: Optional[StoreError] = None

    @property
    def ok(self) -> bool:
        return self.outcome != FAILED


class RateGate:
    """Fixed pause after every call."""

    def __init__(self, pause: float = DEFAULT_PAUSE, sleep=time.sleep):
        self.pause = pause
        self._sleep = sleep
        self.calls = 0

    def wait(self):
        self.calls += 1
        if self.pause > 0:
            self._sleep(self.pause)


def build_fields(profile, handle_field: str = 'Handle',
                 synced_at: Optional[datetime] = None) -> dict:
    """Map a CanonicalProfile onto the Creators table columns."""
    synced_at = synced_at or datetime.now(timezone.utc)
    topics = profile.topics
    if isinstance(topics, (list, tuple)):
        topics = ', '.join(topics)

    return {
        handle_field:        profile.handle,
        'Full Name':         profile.display_name or None,
        'Followers':         profile.follower_count,
        'Bio':               profile.bio or None,
        'Profile URL':       profile.profile_url or None,
        'Email':             profile.email or None,
        'External URL':      profile.external_url or None,
        'Region':            profile.region or None,
        'Location':          profile.location or None,
        'Language':          profile.language or None,
        'Topics':            topics or None,
        'Last Synced (UTC)': synced_at.isoformat().replace('+00:00', 'Z'),
    }


def _formula_literal(value: str) -> str:
    return "'" + value.replace('\\', '\\\\').replace("'", "\\'") + "'"


class AirtableClient:
    """
    Find / create / update rows in one Airtable table.

    Args:
        api_key:       personal access token (Bearer)
        base_id:       Airtable base id ("app...")
        table:         table name
        handle_field:  column holding the unique handle
        pause:         seconds to pause after every HTTP call
        max_attempts:  attempts per call for transient failures (1 = no retry)
        timeout:       per-request transport timeout in seconds
        session:       requests.Session (injectable for tests)
        sleep:         sleep function used by the gate and retry back-off
    """

    def __init__(self,
                 api_key: str,
                 base_id: str,
                 table: str,
                 handle_field: str = 'Handle',
                 pause: float = DEFAULT_PAUSE,
                 max_attempts: int = 3,
                 timeout: float = 30.0,
                 session: Optional[requests.Session] = None,
                 sleep=time.sleep):
        self.table = table
        self.handle_field = handle_field
        self.timeout = timeout
        self.base_url = f'{API_ROOT}/{base_id}/{quote(table, safe="")}'
        self._gate = RateGate(pause, sleep=sleep)
        self._retrying = Retrying(
            stop=stop_after_attempt(max(1, max_attempts)),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(TransientStoreError),
            before_sleep=before_sleep_log(log, logging.WARNING),
            sleep=sleep,
            reraise=True,
        )
        self._session = session or requests.Session()
        self._session.headers.update({
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json',
        })

    @property
    def gate(self) -> RateGate:
        return self._gate

    # ------------------------------------------------------------------ #
    # HTTP
    # ------------------------------------------------------------------ #

    def _send(self, method: str, params: Optional[dict] = None,
              payload: Optional[dict] = None) -> dict:
        try:
            resp = self._session.request(
                method,
                self.base_url,
                params=params,
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransientStoreError(f'{method} {self.table}: {e}') from e
        finally:
            self._gate.wait()

        status = resp.status_code
        if status in (401, 403):
            raise AuthError(f'{method} {self.table}: credentials rejected (HTTP {status})', status)
        if status == 429 or status >= 500:
            raise TransientStoreError(f'{method} {self.table}: HTTP {status}', status)
        if status >= 400:
            raise ValidationError(f'{method} {self.table}: HTTP {status} {resp.text[:200]}', status)

        try:
            return resp.json()
        except ValueError as e:
            raise TransientStoreError(f'{method} {self.table}: invalid JSON response') from e

    def _request(self, method: str, params: Optional[dict] = None,
                 payload: Optional[dict] = None) -> dict:
        return self._retrying(self._send, method, params=params, payload=payload)

    @staticmethod
    def _first_record(data: dict) -> Optional[StoreRecord]:
        records = (data or {}).get('records') or []
        if not records:
            return None
        rec = records[0]
        return StoreRecord(id=rec['id'], fields=rec.get('fields') or {})

    # ------------------------------------------------------------------ #
    # Raw operations (raise StoreError subclasses)
    # ------------------------------------------------------------------ #

    def find_by_handle(self, handle: str) -> Optional[StoreRecord]:
        """Case-insensitive exact match on the handle column; at most one row."""
        formula = f'LOWER({{{self.handle_field}}})={_formula_literal(handle.lower())}'
        data = self._request('GET', params={'maxRecords': 1, 'filterByFormula': formula})
        return self._first_record(data)

    def create_record(self, fields: dict) -> StoreRecord:
        data = self._request('POST', payload={'records': [{'fields': fields}]})
        record = self._first_record(data)
        if record is None:
            raise TransientStoreError(f'POST {self.table}: response carried no record')
        return record

    def update_record(self, record_id: str, fields: dict) -> StoreRecord:
        """Overwrite the given fields on an existing row (other columns untouched)."""
        data = self._request('PATCH', payload={'records': [{'id': record_id, 'fields': fields}]})
        record = self._first_record(data)
        if record is None:
            raise TransientStoreError(f'PATCH {self.table}: response carried no record')
        return record

    # ------------------------------------------------------------------ #
    # Pipeline-facing operations (return results, only AuthError raises)
    # ------------------------------------------------------------------ #

    def upsert(self, profile, dry_run: bool = False) -> UpsertResult:
        """
        Find the profile's row by handle, then update it or create a new one.

        In dry-run the lookup still happens (it is read-only) so the log can
        say what would have been written; no create/update is sent.
        """
        try:
            existing = self.find_by_handle(profile.handle)
            fields = build_fields(profile, self.handle_field)

            if dry_run:
                outcome = WOULD_UPDATE if existing else WOULD_CREATE
                log.debug(f'  Airtable (dry run): {outcome} {profile.handle}')
                return UpsertResult(outcome, record=existing)

            if existing:
                return UpsertResult(UPDATED, record=self.update_record(existing.id, fields))
            return UpsertResult(CREATED, record=self.create_record(fields))

        except (TransientStoreError, ValidationError) as e:
            return UpsertResult(FAILED, error=e)

    def lookup(self, handle: str) -> StoreResult:
        """Check-only: is there already a row for this handle?"""
        try:
            return StoreResult(record=self.find_by_handle(handle))
        except (TransientStoreError, ValidationError) as e:
            return StoreResult(error=e)
