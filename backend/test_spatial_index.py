"""
Spatial index adapter & document store tests
"""
import pytest

from config import VOTES
from errors import InvalidInput, StoreUnavailable
from spatial_index import SpatialIndex


def _put_cells(index, *cells):
    return {cell: index.insert("places", {"location": {"geohash": cell}, "rank": i})
            for i, cell in enumerate(cells)}


class TestRangeByPrefix:

    def test_matches_only_prefix(self, index):
        _put_cells(index, "tdr1v9", "tdr1aa", "tdr1", "tdr2zz", "tdr", "udr1v9")
        found = index.range_by_prefix("places", "location.geohash", "tdr1")
        assert sorted(d["location"]["geohash"] for d in found) == ["tdr1", "tdr1aa", "tdr1v9"]

    def test_ordering_and_limit(self, index):
        _put_cells(index, "tdr1a0", "tdr1b0", "tdr1c0", "tdr1d0")
        found = index.range_by_prefix(
            "places", "location.geohash", "tdr1", order_by=[("rank", True)], limit=2,
        )
        assert [d["rank"] for d in found] == [3, 2]

    def test_collections_are_separate(self, index):
        index.insert("places", {"location": {"geohash": "tdr1v9"}})
        assert index.range_by_prefix("other", "location.geohash", "tdr1") == []

    def test_empty_result(self, index):
        assert index.range_by_prefix("places", "location.geohash", "zzzz") == []

    def test_rejects_unsafe_field_path(self, index):
        with pytest.raises(InvalidInput):
            index.range_by_prefix("places", "location.geohash') OR 1=1 --", "tdr1")


class TestQueries:

    def test_range_query_bounds(self, index):
        for n in range(5):
            index.insert("nums", {"n": n})
        found = index.range_query("nums", "n", gt=1, lte=3, order_by=[("n", False)])
        assert [d["n"] for d in found] == [2, 3]

    def test_exact_query(self, index):
        index.insert("votes", {"reportId": "r1", "voterId": "a"})
        index.insert("votes", {"reportId": "r1", "voterId": "b"})
        index.insert("votes", {"reportId": "r2", "voterId": "a"})
        found = index.exact_query("votes", {"reportId": "r1", "voterId": "a"})
        assert len(found) == 1
        assert found[0]["voterId"] == "a"

    def test_get_update_delete(self, index):
        doc_id = index.insert("things", {"a": 1, "b": 2})
        assert index.update("things", doc_id, {"b": 3})
        assert index.get("things", doc_id) == {"id": doc_id, "a": 1, "b": 3}
        assert index.delete("things", doc_id)
        assert index.get("things", doc_id) is None
        assert not index.update("things", doc_id, {"b": 4})


class TestBatchReplace:

    def test_replaces_set(self, index):
        old = [index.insert("patterns", {"k": i}) for i in range(3)]
        new_ids = index.batch_replace("patterns", old, [{"k": 10}, {"k": 11}])
        remaining = index.all("patterns")
        assert sorted(d["id"] for d in remaining) == sorted(new_ids)
        assert sorted(d["k"] for d in remaining) == [10, 11]

    def test_failure_leaves_previous_set(self, index):
        old = index.insert(VOTES, {"reportId": "r1", "voterId": "a", "voteType": "confirm"})
        duplicate = {"reportId": "r9", "voterId": "z", "voteType": "confirm"}
        # second insert violates the one-vote-per-voter index mid-batch
        with pytest.raises(StoreUnavailable):
            index.batch_replace(VOTES, [old], [duplicate, dict(duplicate)])
        remaining = index.all(VOTES)
        assert [d["id"] for d in remaining] == [old]

    def test_replace_collection_swaps_everything(self, index):
        for i in range(3):
            index.insert("patterns", {"k": i})
        deleted, new_ids = index.replace_collection("patterns", [{"k": 10}])
        assert deleted == 3
        assert [d["id"] for d in index.all("patterns")] == new_ids

    def test_replace_collection_failure_keeps_set(self, index):
        old = index.insert(VOTES, {"reportId": "r1", "voterId": "a", "voteType": "confirm"})
        duplicate = {"reportId": "r9", "voterId": "z", "voteType": "confirm"}
        with pytest.raises(StoreUnavailable):
            index.replace_collection(VOTES, [duplicate, dict(duplicate)])
        assert [d["id"] for d in index.all(VOTES)] == [old]

    def test_error_inside_transaction_rolls_back(self, index):
        doc_id = index.insert("things", {"a": 1})
        with pytest.raises(RuntimeError):
            with index.transaction() as txn:
                txn.update("things", doc_id, {"a": 2})
                raise RuntimeError("boom")
        assert index.get("things", doc_id)["a"] == 1


class TestReadRetries:

    def test_transient_failure_retried(self, store, monkeypatch):
        index = SpatialIndex(store, read_retries=3, retry_backoff=0)
        index.insert("things", {"a": 1})
        real_read = store.read
        calls = {"n": 0}

        def flaky(fn):
            calls["n"] += 1
            if calls["n"] < 3:
                raise StoreUnavailable("database is locked")
            return real_read(fn)

        monkeypatch.setattr(store, "read", flaky)
        assert len(index.all("things")) == 1
        assert calls["n"] == 3

    def test_gives_up_after_retries(self, store, monkeypatch):
        index = SpatialIndex(store, read_retries=2, retry_backoff=0)
        calls = {"n": 0}

        def broken(fn):
            calls["n"] += 1
            raise StoreUnavailable("disk I/O error")

        monkeypatch.setattr(store, "read", broken)
        with pytest.raises(StoreUnavailable):
            index.range_by_prefix("things", "location.geohash", "tdr1")
        assert calls["n"] == 3


class TestStore:

    def test_server_timestamp_strictly_increasing(self, store):
        stamps = [store.server_timestamp() for _ in range(5)]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == 5

    def test_stats(self, index, store):
        index.insert("a", {})
        index.insert("a", {})
        index.insert("b", {})
        assert store.stats() == {"a": 2, "b": 1}
