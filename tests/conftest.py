import copy
import re

import pytest

from creator_sourcing.airtable_client import AirtableClient
from creator_sourcing.config import PipelineConfig


class MemoryKV:
    """Key-value store kept in a dict; remembers every write."""

    def __init__(self, initial=None):
        self.data = copy.deepcopy(initial or {})
        self.writes = []

    def get_value(self, key):
        return copy.deepcopy(self.data.get(key))

    def set_value(self, key, value):
        self.data[key] = copy.deepcopy(value)
        self.writes.append(key)


class ListSink:
    def __init__(self):
        self.records = []

    def push_data(self, record):
        self.records.append(record)

    @property
    def handles(self):
        return [r['handle'] for r in self.records]


class FakeProducer:
    """
    `seeds` maps a seed value to a list of raw items, an Exception to raise
    from invoke(), or None for a run without a dataset.
    """

    def __init__(self, seeds):
        self.seeds = seeds
        self.invoked = []

    def invoke(self, seed, max_items):
        self.invoked.append((seed, max_items))
        outcome = self.seeds.get(seed.value, [])
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return None
        return f'ds-{seed.value}'

    def fetch_items(self, dataset_id, limit):
        value = dataset_id[len('ds-'):]
        return list(self.seeds[value])[:limit]


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=''):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError('no json')
        return self._payload


class FakeAirtable:
    """
    In-memory table behind a requests.Session look-alike.

    `fail` maps an HTTP method to a status code (or exception) returned
    for every request with that method.
    """

    _FORMULA_VALUE = re.compile(r"='(.*)'$")

    def __init__(self, rows=None, handle_field='Handle', fail=None, events=None):
        self.headers = {}
        self.rows = {}
        self.handle_field = handle_field
        self.fail = dict(fail or {})
        self.calls = []
        self.events = events if events is not None else []
        for fields in rows or []:
            self._insert(fields)

    def _insert(self, fields):
        rec_id = f'rec{len(self.rows) + 1}'
        self.rows[rec_id] = dict(fields)
        return {'id': rec_id, 'fields': self.rows[rec_id]}

    def methods(self):
        return [c['method'] for c in self.calls]

    def request(self, method, url, params=None, json=None, timeout=None):
        self.calls.append({'method': method, 'url': url, 'params': params, 'json': json})
        self.events.append(('call', method))

        failure = self.fail.get(method)
        if isinstance(failure, Exception):
            raise failure
        if failure:
            return FakeResponse(failure, {'error': {'type': 'FAILED'}}, text='failed')

        if method == 'GET':
            wanted = self._FORMULA_VALUE.search(params['filterByFormula']).group(1)
            for rec_id, fields in self.rows.items():
                if str(fields.get(self.handle_field, '')).lower() == wanted:
                    return FakeResponse(200, {'records': [{'id': rec_id, 'fields': fields}]})
            return FakeResponse(200, {'records': []})

        if method == 'POST':
            created = [self._insert(r['fields']) for r in json['records']]
            return FakeResponse(200, {'records': created})

        if method == 'PATCH':
            updated = []
            for r in json['records']:
                self.rows[r['id']].update(r['fields'])
                updated.append({'id': r['id'], 'fields': self.rows[r['id']]})
            return FakeResponse(200, {'records': updated})

        return FakeResponse(405, {})


@pytest.fixture
def kv():
    return MemoryKV()


@pytest.fixture
def sink():
    return ListSink()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_client(sleeps):
    def _make(table=None, **kwargs):
        table = table if table is not None else FakeAirtable()
        client = AirtableClient(
            api_key='key123',
            base_id='appBASE',
            table='Creators',
            session=table,
            sleep=sleeps.append,
            **kwargs,
        )
        return client, table
    return _make


@pytest.fixture
def make_config():
    def _make(**overrides):
        values = dict(
            search_terms=['coupon codes'],
            hashtags=[],
            max_profiles_per_seed=50,
            min_followers=10_000,
            max_followers=100_000,
            require_us=True,
            airtable_enabled=True,
            airtable_api_key='key123',
            airtable_base_id='appBASE',
            apify_token='apify-token',
        )
        values.update(overrides)
        return PipelineConfig(**values)
    return _make
