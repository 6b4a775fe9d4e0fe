import asyncio
import random

from conftest import make_cached

from prepal.firestore_cache import FirestoreQuestionCache
from prepal.models import Preposition


class FakeDoc:
    def __init__(self, data):
        self.data = data

    def to_dict(self):
        return dict(self.data)


class FakeQuery:
    def __init__(self, store, filters=(), limit=None):
        self.store = store
        self.filters = list(filters)
        self.limit_value = limit

    def where(self, field, op, value):
        assert op == "=="
        return FakeQuery(self.store, self.filters + [(field, value)], self.limit_value)

    def limit(self, count):
        return FakeQuery(self.store, self.filters, count)

    def stream(self):
        docs = [d for d in self.store.values() if all(d.get(f) == v for f, v in self.filters)]
        return [FakeDoc(d) for d in docs[:self.limit_value]]


class FakeDocument:
    def __init__(self, store, doc_id):
        self.store = store
        self.doc_id = doc_id

    def set(self, data):
        self.store[self.doc_id] = dict(data)


class FakeCollection(FakeQuery):
    def document(self, doc_id):
        return FakeDocument(self.store, doc_id)


class FakeFirestore:
    def __init__(self, fail=False):
        self.store = {}
        self.fail = fail
        self.collections = []

    def collection(self, name):
        if self.fail:
            raise RuntimeError("firestore unavailable")
        self.collections.append(name)
        return FakeCollection(self.store)


def test_disconnected_cache_is_a_no_op() -> None:
    remote = FirestoreQuestionCache()
    assert remote.is_connected() is False
    assert asyncio.run(remote.find_one("L1", "in")) is None
    assert asyncio.run(remote.put(make_cached().to_dict())) is False


def test_missing_credentials_file_disconnects(tmp_path) -> None:
    remote = FirestoreQuestionCache.from_credentials(str(tmp_path / "missing.json"))
    assert remote.is_connected() is False
    assert FirestoreQuestionCache.from_credentials(None).is_connected() is False


def test_put_then_find() -> None:
    client = FakeFirestore()
    remote = FirestoreQuestionCache(client)

    async def scenario():
        assert await remote.put(make_cached("q-a").to_dict()) is True
        assert await remote.put(make_cached("q-b").to_dict()) is True
        await remote.put(make_cached("q-for", preposition=Preposition.FOR).to_dict())
        return (
            await remote.find_one("L1", "in", {"q-a"}, rng=random.Random(0)),
            await remote.find_one("L1", "in", {"q-a", "q-b"}),
        )

    found, exhausted = asyncio.run(scenario())
    assert found["id"] == "q-b"
    assert exhausted is None
    assert set(client.collections) == {FirestoreQuestionCache.COLLECTION}


def test_failures_behave_as_a_miss() -> None:
    remote = FirestoreQuestionCache(FakeFirestore(fail=True))
    assert asyncio.run(remote.find_one("L1", "in")) is None
    assert asyncio.run(remote.put(make_cached().to_dict())) is False
