"""
Pytest configuration and shared fixtures.
"""

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult

from catalog_api.auth import SessionTokenService, get_token_service
from catalog_api.database import CollectionStore
from catalog_api.main import app

TEST_SECRET = "test-secret"


class FakeCursor:
    """Cursor over an in-memory result set."""

    def __init__(self, docs):
        self.docs = docs

    async def to_list(self, length=None):
        return [dict(doc) for doc in self.docs]


class FakeCollection:
    """Subset of the motor collection API backed by a list."""

    def __init__(self):
        self.docs = []

    @staticmethod
    def _matches(doc, filter_query):
        return all(doc.get(key) == value for key, value in filter_query.items())

    def find(self, filter_query=None):
        return FakeCursor([d for d in self.docs if self._matches(d, filter_query or {})])

    async def find_one(self, filter_query):
        for doc in self.docs:
            if self._matches(doc, filter_query):
                return dict(doc)
        return None

    async def insert_one(self, document):
        doc = dict(document)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return InsertOneResult(doc["_id"], True)

    async def replace_one(self, filter_query, replacement, upsert=False):
        for index, doc in enumerate(self.docs):
            if self._matches(doc, filter_query):
                new_doc = {"_id": doc["_id"], **replacement}
                modified = int(new_doc != doc)
                self.docs[index] = new_doc
                return UpdateResult({"n": 1, "nModified": modified}, True)
        if upsert:
            new_doc = {**filter_query, **replacement}
            new_doc.setdefault("_id", ObjectId())
            self.docs.append(new_doc)
            return UpdateResult({"n": 1, "nModified": 0, "upserted": new_doc["_id"]}, True)
        return UpdateResult({"n": 0, "nModified": 0}, True)

    async def delete_one(self, filter_query):
        for index, doc in enumerate(self.docs):
            if self._matches(doc, filter_query):
                del self.docs[index]
                return DeleteResult({"n": 1}, True)
        return DeleteResult({"n": 0}, True)


class UnreachableCollection(FakeCollection):
    """Collection whose server can never be selected."""

    @staticmethod
    async def _fail(*args, **kwargs):
        raise ServerSelectionTimeoutError("cluster0: timed out")

    def find(self, filter_query=None):
        cursor = FakeCursor([])
        cursor.to_list = self._fail
        return cursor

    find_one = _fail
    insert_one = _fail
    replace_one = _fail
    delete_one = _fail


class FakeDatabase(dict):
    """Database handle that creates collections on first access."""

    def __init__(self, collection_class=FakeCollection):
        super().__init__()
        self.collection_class = collection_class

    def __missing__(self, name):
        collection = self.collection_class()
        self[name] = collection
        return collection

    async def command(self, name):
        if self.collection_class is UnreachableCollection:
            raise ServerSelectionTimeoutError("cluster0: timed out")
        return {"ok": 1.0}


@pytest.fixture
def fake_database():
    """In-memory database holding the catalog collections."""
    return FakeDatabase()


@pytest.fixture
def store(fake_database):
    """Collection store over the in-memory database."""
    return CollectionStore(fake_database)


@pytest.fixture
def unreachable_store():
    """Collection store whose database cannot be reached."""
    return CollectionStore(FakeDatabase(UnreachableCollection))


@pytest.fixture
def token_service():
    """Development-mode token service with a fixed secret."""
    return SessionTokenService(secret=TEST_SECRET)


@pytest.fixture
def client(store, token_service):
    """Create test client wired to the in-memory store."""
    app.state.store = store
    app.dependency_overrides[get_token_service] = lambda: token_service
    yield TestClient(app)
    app.dependency_overrides.clear()
    del app.state.store


@pytest.fixture
def auth_client(client):
    """Test client holding a session cookie for reader@example.com."""
    response = client.post("/jwt", json={"email": "reader@example.com"})
    assert response.status_code == 200
    return client


@pytest.fixture
def sample_book():
    """Book document as submitted by the frontend."""
    return {
        "book_name": "Dune",
        "author_name": "Herbert",
        "category": "scifi",
        "book_quantity": 3,
        "rating": 5,
        "description": "Desert planet politics.",
        "photo": "http://x/y.jpg",
    }
