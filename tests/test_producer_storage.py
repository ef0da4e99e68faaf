import csv
import json
from types import SimpleNamespace

import pytest

from creator_sourcing.errors import ProducerError
from creator_sourcing.pipeline import Seed
from creator_sourcing.producer import ApifyProducer, resolve_dataset_id
from creator_sourcing.storage import (
    ApifyDatasetSink, ApifyKeyValueStore, LocalDatasetSink, LocalKeyValueStore,
)


class FakeActor:
    def __init__(self, run=None, error=None):
        self.run = run
        self.error = error
        self.calls = []

    def call(self, run_input=None, timeout_secs=None):
        self.calls.append({'run_input': run_input, 'timeout_secs': timeout_secs})
        if self.error:
            raise self.error
        return self.run


class FakeApify:
    """Just enough of apify_client.ApifyClient for the adapters."""

    def __init__(self, actor=None, items=None):
        self._actor = actor or FakeActor()
        self.items = items or {}
        self.records = {}
        self.pushed = {}
        self.actor_ids = []

    def actor(self, actor_id):
        self.actor_ids.append(actor_id)
        return self._actor

    def dataset(self, dataset_id):
        outer = self

        class _Dataset:
            def list_items(self, limit=None):
                if dataset_id not in outer.items:
                    raise RuntimeError('dataset not found')
                return SimpleNamespace(items=outer.items[dataset_id][:limit])

            def push_items(self, items):
                outer.pushed.setdefault(dataset_id, []).extend(items)

        return _Dataset()

    def key_value_stores(self):
        return SimpleNamespace(get_or_create=lambda name: {'id': f'kv-{name}'})

    def datasets(self):
        return SimpleNamespace(get_or_create=lambda name: {'id': f'ds-{name}'})

    def key_value_store(self, store_id):
        outer = self

        class _Store:
            def get_record(self, key):
                if (store_id, key) not in outer.records:
                    return None
                return {'key': key, 'value': outer.records[(store_id, key)]}

            def set_record(self, key, value):
                outer.records[(store_id, key)] = value

        return _Store()


@pytest.mark.parametrize('run, expected', [
    ({'defaultDatasetId': 'abc'}, 'abc'),
    ({'output': {'defaultDatasetId': 'nested'}}, 'nested'),
    ({'defaultDatasetId': 'top', 'output': {'defaultDatasetId': 'nested'}}, 'top'),
    ({'output': {}}, None),
    ({}, None),
    (None, None),
])
def test_resolve_dataset_id(run, expected):
    assert resolve_dataset_id(run) == expected


def test_build_input_per_seed_kind_with_overrides():
    producer = ApifyProducer(FakeApify(), actor_input={'proxyConfiguration': {'useApifyProxy': True},
                                                       'maxItems': 10})
    term = producer.build_input(Seed('term', 'coupon codes'), 200)
    tag = producer.build_input(Seed('hashtag', 'amazonfinds'), 200)

    assert term == {'searchTerms': ['coupon codes'], 'maxItems': 10,
                    'proxyConfiguration': {'useApifyProxy': True}}
    assert 'hashtags' not in term
    assert tag['hashtags'] == ['amazonfinds']
    assert 'searchTerms' not in tag


def test_invoke_returns_dataset_id_and_passes_timeout():
    actor = FakeActor(run={'status': 'SUCCEEDED', 'defaultDatasetId': 'ds1'})
    client = FakeApify(actor=actor)
    producer = ApifyProducer(client, actor_id='clockworks/tiktok-scraper', timeout_secs=600)

    assert producer.invoke(Seed('term', 'x'), 5) == 'ds1'
    assert client.actor_ids == ['clockworks/tiktok-scraper']
    assert actor.calls[0]['timeout_secs'] == 600
    assert actor.calls[0]['run_input']['maxItems'] == 5


def test_invoke_without_run_returns_none():
    producer = ApifyProducer(FakeApify(actor=FakeActor(run=None)))
    assert producer.invoke(Seed('term', 'x'), 5) is None


def test_invoke_failure_becomes_producer_error():
    producer = ApifyProducer(FakeApify(actor=FakeActor(error=RuntimeError('timed out'))))
    with pytest.raises(ProducerError, match='timed out'):
        producer.invoke(Seed('hashtag', 'x'), 5)


def test_fetch_items_limits_and_wraps_errors():
    producer = ApifyProducer(FakeApify(items={'ds1': [{'n': i} for i in range(10)]}))
    assert len(producer.fetch_items('ds1', 3)) == 3
    with pytest.raises(ProducerError):
        producer.fetch_items('missing', 3)


def test_apify_key_value_store_roundtrip():
    client = FakeApify()
    store = ApifyKeyValueStore(client, 'tiktok-dedupe')
    assert store.get_value('seenUsernames') is None
    store.set_value('seenUsernames', {'@a': True})
    assert store.get_value('seenUsernames') == {'@a': True}
    assert ('kv-tiktok-dedupe', 'seenUsernames') in client.records


def test_apify_dataset_sink_pushes_to_named_dataset():
    client = FakeApify()
    sink = ApifyDatasetSink(client, 'tiktok-creators')
    sink.push_data({'handle': '@a'})
    sink.push_data({'handle': '@b'})
    assert client.pushed == {'ds-tiktok-creators': [{'handle': '@a'}, {'handle': '@b'}]}


def test_local_key_value_store(tmp_path):
    store = LocalKeyValueStore(str(tmp_path), 'tiktok-dedupe')
    assert store.get_value('seenUsernames') is None
    store.set_value('seenUsernames', {'@a': True})

    reopened = LocalKeyValueStore(str(tmp_path), 'tiktok-dedupe')
    assert reopened.get_value('seenUsernames') == {'@a': True}
    saved = json.loads((tmp_path / 'tiktok-dedupe' / 'seenUsernames.json').read_text(encoding='utf-8'))
    assert saved == {'@a': True}


def test_local_dataset_sink_appends_and_exports_csv(tmp_path):
    sink = LocalDatasetSink(str(tmp_path), 'creators')
    assert sink.export_csv() is None

    sink.push_data({'handle': '@a', 'follower_count': 10, 'topics': ['x', 'y'], 'raw': {'k': 1}})
    sink.push_data({'handle': '@b', 'follower_count': 20, 'topics': None, 'raw': {}})

    assert [r['handle'] for r in sink.read_all()] == ['@a', '@b']

    out = sink.export_csv()
    with open(out, newline='', encoding='utf-8') as fh:
        rows = list(csv.DictReader(fh))
    assert [r['handle'] for r in rows] == ['@a', '@b']
    assert rows[0]['topics'] == 'x, y'
    assert 'raw' not in rows[0]
