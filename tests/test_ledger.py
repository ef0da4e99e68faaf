from conftest import MemoryKV

from creator_sourcing.ledger import DedupeLedger


def test_load_missing_key_starts_empty():
    ledger = DedupeLedger.load(MemoryKV(), 'seenUsernames')
    assert len(ledger) == 0
    assert not ledger.has('@a')


def test_load_existing_mapping():
    kv = MemoryKV({'seenUsernames': {'@a': True, '@b': True, '@c': False}})
    ledger = DedupeLedger.load(kv, 'seenUsernames')
    assert ledger.has('@a') and '@b' in ledger
    assert not ledger.has('@c')


def test_load_malformed_value_starts_empty():
    kv = MemoryKV({'seenUsernames': ['@a', '@b']})
    assert len(DedupeLedger.load(kv, 'seenUsernames')) == 0


def test_mark_seen_is_idempotent():
    ledger = DedupeLedger(MemoryKV(), 'k')
    ledger.mark_seen('@a')
    ledger.mark_seen('@a')
    assert len(ledger) == 1
    assert ledger.to_dict() == {'@a': True}


def test_check_and_mark_only_first_caller_wins():
    ledger = DedupeLedger(MemoryKV(), 'k')
    assert ledger.check_and_mark('@a') is True
    assert ledger.check_and_mark('@a') is False


def test_persist_writes_flat_mapping_and_clears_dirty():
    kv = MemoryKV()
    ledger = DedupeLedger(kv, 'seen')
    assert not ledger.dirty
    ledger.mark_seen('@a')
    assert ledger.dirty
    ledger.persist()
    assert kv.data['seen'] == {'@a': True}
    assert not ledger.dirty


def test_persisted_handles_survive_reload():
    kv = MemoryKV()
    first = DedupeLedger.load(kv, 'seen')
    first.mark_seen('@a')
    first.persist()

    second = DedupeLedger.load(kv, 'seen')
    assert second.has('@a')
    assert not second.check_and_mark('@a')
