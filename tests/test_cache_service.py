"""
Tests for the cached extraction front and the cache stores.
"""

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
import redis

from backend.models.report import CacheEntry, FieldMapping, ResultSet
from services.cache_service import (
    CacheGate, MemoryCacheStore, RedisCacheStore, mappings_digest
)
from services.errors import WorksheetNotFound
from services.extraction_service import ExtractionService

FILE_PATH = '/data/FinanceReport.xlsx'


@pytest.fixture
def store(fake_clock):
    return MemoryCacheStore(clock=fake_clock)


@pytest.fixture
def gate(fake_accessor, store):
    return CacheGate(ExtractionService(), fake_accessor, store)


@pytest.fixture
def strict_gate(fake_accessor, store):
    return CacheGate(ExtractionService(), fake_accessor, store, key_mode='content')


class TestMemoryCacheStore:
    """Test the in-process store."""

    def test_set_and_get(self, store):
        store.set('k', {'a': 1}, timedelta(minutes=1))

        assert store.get('k') == ({'a': 1}, True)
        assert store.get('missing') == (None, False)

    def test_expiry(self, store, fake_clock):
        store.set('k', 'v', timedelta(seconds=10))

        fake_clock.advance(9)
        assert store.get('k') == ('v', True)

        fake_clock.advance(1)
        assert store.get('k') == (None, False)
        assert len(store) == 0

    def test_last_writer_wins(self, store):
        store.set('k', 'first', timedelta(minutes=1))
        store.set('k', 'second', timedelta(minutes=1))

        assert store.get('k') == ('second', True)

    def test_expired_entries_purged_on_write(self, store, fake_clock):
        store.set('old', 1, timedelta(seconds=10))
        store.set('kept', 2, timedelta(minutes=1))

        fake_clock.advance(30)
        store.set('new', 3, timedelta(minutes=1))

        assert len(store) == 2
        assert store.get('kept') == (2, True)
        assert store.get('old') == (None, False)

    def test_concurrent_get_and_set(self, store):
        def write_then_read(n):
            store.set('shared', n, timedelta(minutes=1))
            store.set(f'own-{n}', n, timedelta(minutes=1))
            return store.get('shared')

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(write_then_read, range(200)))

        assert all(hit for _, hit in results)
        assert all(0 <= value < 200 for value, _ in results)
        assert len(store) == 201

    def test_delete_and_clear(self, store):
        store.set('a', 1, timedelta(minutes=1))
        store.set('b', 2, timedelta(minutes=1))

        store.delete('a')
        store.delete('never-set')
        assert store.get('a') == (None, False)

        store.clear()
        assert store.get('b') == (None, False)


class FakeRedis:
    """Minimal Redis client double."""

    def __init__(self, fail=False):
        self.data = {}
        self.ttls = {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("connection refused")

    def get(self, key):
        self._check()
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self._check()
        self.data.pop(key, None)

    def ping(self):
        self._check()
        return True


class TestRedisCacheStore:
    """Test the Redis-backed store."""

    def test_round_trip_as_json(self):
        client = FakeRedis()
        store = RedisCacheStore(client=client)

        store.set('k', {'shape': 2, 'records': []}, timedelta(minutes=30))

        assert json.loads(client.data['k']) == {'shape': 2, 'records': []}
        assert client.ttls['k'] == timedelta(minutes=30)
        assert store.get('k') == ({'shape': 2, 'records': []}, True)

    def test_unreachable_redis_is_a_miss(self):
        store = RedisCacheStore(client=FakeRedis(fail=True))

        store.set('k', {'a': 1}, timedelta(minutes=1))
        assert store.get('k') == (None, False)
        assert store.ping() is False


class TestCacheEntry:
    """Test cache entry serialization."""

    def test_dict_round_trip_keeps_order(self):
        result = ResultSet.from_records([
            {'companyName': 'A', 'revenue': '1', 'ebitda': '2'},
            {'companyName': 'B', 'revenue': '3'}
        ])
        entry = CacheEntry(result_set=result, shape=2)

        restored = CacheEntry.from_dict(json.loads(json.dumps(entry.to_dict())))

        assert restored.result_set == result
        assert restored.result_set.schema.columns == ('companyName', 'revenue', 'ebitda')
        assert restored.shape == 2
        assert restored.created_at == entry.created_at
        assert restored.created_at.utcoffset() == timedelta(0)


class TestCacheGate:
    """Test cache hits, misses and shape checks."""

    def test_repeat_request_served_from_cache(self, gate, fake_accessor, sample_mappings):
        first = gate.get('Summary', FILE_PATH, sample_mappings)
        second = gate.get('Summary', FILE_PATH, sample_mappings)

        assert fake_accessor.open_calls == 1
        assert second == first
        assert second.to_list() == first.to_list()

    def test_workbook_closed_after_extraction(self, gate, fake_accessor, sample_mappings):
        gate.get('Summary', FILE_PATH, sample_mappings)

        assert fake_accessor.workbook.closed
        assert fake_accessor.opened_paths == [FILE_PATH]

    def test_expired_entry_re_extracts(self, gate, fake_accessor, fake_clock, sample_mappings):
        gate.get('Summary', FILE_PATH, sample_mappings)

        fake_clock.advance(29 * 60)
        gate.get('Summary', FILE_PATH, sample_mappings)
        assert fake_accessor.open_calls == 1

        fake_clock.advance(60)
        gate.get('Summary', FILE_PATH, sample_mappings)
        assert fake_accessor.open_calls == 2

    def test_changed_field_count_re_extracts(self, gate, fake_accessor, sample_mappings):
        gate.get('Summary', FILE_PATH, sample_mappings)
        result = gate.get('Summary', FILE_PATH, sample_mappings[:2])

        assert fake_accessor.open_calls == 2
        assert result.schema.columns == ('companyName', 'revenue', 'ebitda')

        # The shorter request replaced the entry
        gate.get('Summary', FILE_PATH, sample_mappings[:2])
        assert fake_accessor.open_calls == 2

    def test_same_count_different_fields_is_stale_hit(self, gate, fake_accessor, sample_mappings):
        """Known gap: the default key only tracks the number of fields."""
        gate.get('Summary', FILE_PATH, sample_mappings)
        swapped = [FieldMapping('Margin', 9), FieldMapping('Debt', 10), FieldMapping('Cash', 11)]

        result = gate.get('Summary', FILE_PATH, swapped)

        assert fake_accessor.open_calls == 1
        assert 'revenue' in result.schema.columns
        assert 'margin' not in result.schema.columns

    def test_content_mode_detects_changed_fields(self, strict_gate, fake_accessor, sample_mappings):
        strict_gate.get('Summary', FILE_PATH, sample_mappings)
        swapped = [FieldMapping('Margin', 9), FieldMapping('Debt', 10), FieldMapping('Cash', 11)]

        result = strict_gate.get('Summary', FILE_PATH, swapped)

        assert fake_accessor.open_calls == 2
        assert result.schema.columns == ('companyName', 'margin', 'debt', 'cash')

        strict_gate.get('Summary', FILE_PATH, sample_mappings)
        strict_gate.get('Summary', FILE_PATH, swapped)
        assert fake_accessor.open_calls == 2

    def test_keys_separate_worksheets_and_files(self, gate, sample_mappings):
        assert gate.cache_key('Summary', FILE_PATH) == f'ExcelData_Summary_{FILE_PATH}'
        assert gate.cache_key('Summary', FILE_PATH) != gate.cache_key('Summary', '/other.xlsx')
        assert gate.cache_key('Summary', FILE_PATH) != gate.cache_key('Detail', FILE_PATH)

    def test_content_key_includes_digest(self, strict_gate, sample_mappings):
        key = strict_gate.cache_key('Summary', FILE_PATH, sample_mappings)

        assert key == f'ExcelData_Summary_{FILE_PATH}_{mappings_digest(sample_mappings)}'

    def test_digest_ignores_field_name_case(self):
        upper = [FieldMapping('REVENUE', 5)]
        lower = [FieldMapping('revenue', 5)]

        assert mappings_digest(upper) == mappings_digest(lower)
        assert mappings_digest(lower) != mappings_digest([FieldMapping('revenue', 6)])

    def test_missing_worksheet_not_cached(self, gate, fake_accessor, store, sample_mappings):
        with pytest.raises(WorksheetNotFound):
            gate.get('Nope', FILE_PATH, sample_mappings)

        assert store.get(gate.cache_key('Nope', FILE_PATH)) == (None, False)
        assert fake_accessor.workbook.closed

    def test_invalidate(self, gate, fake_accessor, sample_mappings):
        gate.get('Summary', FILE_PATH, sample_mappings)
        gate.invalidate('Summary', FILE_PATH)
        gate.get('Summary', FILE_PATH, sample_mappings)

        assert fake_accessor.open_calls == 2

    def test_works_with_redis_store(self, fake_accessor, sample_mappings):
        gate = CacheGate(ExtractionService(), fake_accessor, RedisCacheStore(client=FakeRedis()))

        first = gate.get('Summary', FILE_PATH, sample_mappings)
        second = gate.get('Summary', FILE_PATH, sample_mappings)

        assert fake_accessor.open_calls == 1
        assert second == first

    def test_unknown_key_mode(self, fake_accessor, store):
        with pytest.raises(ValueError):
            CacheGate(ExtractionService(), fake_accessor, store, key_mode='identity')

    def test_concurrent_requests_get_consistent_results(self, gate, sample_mappings):
        expected = {
            3: gate.get('Summary', FILE_PATH, sample_mappings).to_list(),
        }
        gate.invalidate('Summary', FILE_PATH)
        expected[2] = gate.get('Summary', FILE_PATH, sample_mappings[:2]).to_list()
        gate.invalidate('Summary', FILE_PATH)

        requests = [sample_mappings if n % 2 else sample_mappings[:2] for n in range(40)]

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(lambda m: gate.get('Summary', FILE_PATH, m), requests))

        for mappings, result in zip(requests, results):
            assert result.to_list() == expected[len(mappings)]

        cached = gate.get('Summary', FILE_PATH, sample_mappings[:2])
        assert cached.to_list() == expected[2]
