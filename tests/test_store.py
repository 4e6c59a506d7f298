"""Tests for precomputed stores."""

import pickle

import numpy as np
import pytest

from spiralizer.cache.entry import CacheEntry
from spiralizer.cache.keys import SpiralParams
from spiralizer.cache.store import (
    PickleStore, SQLiteStore, find_store_file, open_precomputed_store,
    write_pickle_store, write_sqlite_store
)
from spiralizer.core.errors import CacheIOError


UNSUPPORTED_PROTOCOL = b"\x80\x09garbage"


class CorruptEntry:
    """Stands in for a CacheEntry whose blob cannot be unpickled."""

    bounded_count = 0

    def to_blob(self):
        return UNSUPPORTED_PROTOCOL


@pytest.fixture
def params():
    return SpiralParams(0, 100, 300)


class TestCacheEntry:
    def test_blob_round_trip(self, default_entry):
        restored = CacheEntry.from_blob(default_entry.to_blob())

        np.testing.assert_array_equal(restored.points, default_entry.points)
        assert restored.bounded_count == default_entry.bounded_count

    def test_corrupt_blob(self):
        with pytest.raises(CacheIOError):
            CacheEntry.from_blob(b"garbage")

    def test_wrong_type_blob(self):
        with pytest.raises(CacheIOError):
            CacheEntry.from_blob(pickle.dumps(42))

    def test_unsupported_protocol_blob(self):
        with pytest.raises(CacheIOError):
            CacheEntry.from_blob(UNSUPPORTED_PROTOCOL)


class TestPickleStore:
    @pytest.mark.parametrize("filename", ["spiral_cache.pkl.xz", "spiral_cache.pkl"])
    def test_write_and_read(self, tmp_path, params, default_entry, filename):
        path = write_pickle_store({params.cache_key: default_entry}, tmp_path / filename)

        with PickleStore(path) as store:
            assert len(store) == 1
            assert store.get(params.cache_key).bounded_count == default_entry.bounded_count
            assert store.get("1_2_3") is None

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "spiral_cache.pkl"
        path.write_bytes(b"not a pickle")

        with pytest.raises(CacheIOError):
            PickleStore(path)

    def test_corrupt_compressed_file(self, tmp_path):
        path = tmp_path / "spiral_cache.pkl.xz"
        path.write_bytes(b"not xz data")

        with pytest.raises(CacheIOError):
            PickleStore(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "spiral_cache.pkl"
        path.write_bytes(pickle.dumps([1, 2, 3]))

        with pytest.raises(CacheIOError):
            PickleStore(path)

    def test_unsupported_protocol_file(self, tmp_path):
        path = tmp_path / "spiral_cache.pkl"
        path.write_bytes(UNSUPPORTED_PROTOCOL)

        with pytest.raises(CacheIOError):
            PickleStore(path)

    def test_mapping_of_foreign_values(self, tmp_path, default_entry):
        path = tmp_path / "spiral_cache.pkl"
        path.write_bytes(pickle.dumps({"0_100_300": default_entry, "0_50_200": {"points": []}}))

        with pytest.raises(CacheIOError, match="not CacheEntry"):
            PickleStore(path)


class TestSQLiteStore:
    def test_write_and_read(self, tmp_path, params, default_entry):
        path = tmp_path / "spiral_cache.sqlite"
        assert write_sqlite_store([(params, default_entry)], path) == 1

        with SQLiteStore(path) as store:
            assert len(store) == 1
            entry = store.get(params.cache_key)
            np.testing.assert_array_equal(entry.points, default_entry.points)
            assert store.get("1_2_3") is None

    def test_keys_in_range(self, tmp_path, default_entry):
        rows = [(SpiralParams(s, e, n), default_entry)
                for s, e, n in [(0, 100, 300), (0, 200, 300), (10, 100, 50), (50, 300, 1000)]]
        path = tmp_path / "spiral_cache.sqlite"
        write_sqlite_store(rows, path)

        with SQLiteStore(path) as store:
            keys = store.keys_in_range((0, 10), (100, 200), (50, 300))

        assert keys == ["0_100_300", "0_200_300", "10_100_50"]

    def test_overwrites_existing(self, tmp_path, params, default_entry):
        path = tmp_path / "spiral_cache.sqlite"
        write_sqlite_store([(params, default_entry), (SpiralParams(0, 50, 20), default_entry)], path)
        write_sqlite_store([(params, default_entry)], path)

        with SQLiteStore(path) as store:
            assert len(store) == 1

    def test_corrupt_row_raises_cache_error(self, tmp_path, params):
        path = tmp_path / "spiral_cache.sqlite"
        write_sqlite_store([(params, CorruptEntry())], path)

        with SQLiteStore(path) as store:
            with pytest.raises(CacheIOError):
                store.get(params.cache_key)

    def test_not_a_database(self, tmp_path):
        path = tmp_path / "spiral_cache.sqlite"
        path.write_bytes(b"this is not sqlite" * 100)

        with pytest.raises(CacheIOError):
            SQLiteStore(path)

    def test_missing_table(self, tmp_path):
        path = tmp_path / "spiral_cache.sqlite"
        path.touch()

        with pytest.raises(CacheIOError):
            SQLiteStore(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(CacheIOError):
            SQLiteStore(tmp_path / "absent.sqlite")


class TestStoreDiscovery:
    def test_prefers_sqlite(self, tmp_path, params, default_entry):
        write_pickle_store({params.cache_key: default_entry}, tmp_path / "spiral_cache.pkl.xz")
        write_sqlite_store([(params, default_entry)], tmp_path / "spiral_cache.sqlite")

        assert find_store_file(tmp_path).name == "spiral_cache.sqlite"
        store = open_precomputed_store(tmp_path)
        try:
            assert isinstance(store, SQLiteStore)
        finally:
            store.close()

    def test_falls_back_to_pickle(self, tmp_path, params, default_entry):
        write_pickle_store({params.cache_key: default_entry}, tmp_path / "spiral_cache.pkl")

        assert isinstance(open_precomputed_store(tmp_path), PickleStore)

    def test_nothing_found(self, tmp_path):
        assert open_precomputed_store(tmp_path) is None
        assert open_precomputed_store(tmp_path / "missing") is None
