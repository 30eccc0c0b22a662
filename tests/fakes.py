import copy
import json
import threading
import time

from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from wdstore.errors import HttpError, NetworkError


def entity_body(entity_id, labels=None, claims=None):
    """Return an EntityData response body for Q<entity_id>."""
    qid = f"Q{entity_id}"
    entity = {
        "title": qid,
        "id": qid,
        "labels": {lang: {"language": lang, "value": value} for lang, value in (labels or {}).items()},
        "claims": claims or {},
    }
    return json.dumps({"entities": {qid: entity}})


def item_claim(property_id, numeric_id=None):
    datavalue = {"type": "wikibase-entityid", "value": {"entity-type": "item"}}
    if numeric_id is not None:
        datavalue["value"]["numeric-id"] = numeric_id
        datavalue["value"]["id"] = f"Q{numeric_id}"
    return {
        "mainsnak": {"snaktype": "value", "property": property_id, "datavalue": datavalue},
        "type": "statement",
        "rank": "normal",
    }


class FakeCursor:
    """Lazy like a pymongo cursor: `error` is raised on first iteration, not at creation."""

    def __init__(self, documents, error=None):
        self._documents = documents
        self._error = error
        self.closed = False

    def __iter__(self):
        if self._error is not None:
            raise self._error
        return iter(self._documents)

    def close(self):
        self.closed = True


class FakeCollection:
    """Thread-safe stand-in for the subset of pymongo.collection.Collection used by the store."""

    def __init__(self):
        self._docs = {}
        self._lock = threading.Lock()
        self.duplicate_inserts = 0
        self.query_error = None
        self.cursors = []

    def insert_one(self, doc):
        with self._lock:
            if doc["_id"] in self._docs:
                self.duplicate_inserts += 1
                raise DuplicateKeyError(f"E11000 duplicate key error _id: {doc['_id']}", code=11000)
            self._docs[doc["_id"]] = copy.deepcopy(doc)

    def replace_one(self, query, doc, upsert=False):
        with self._lock:
            if query["_id"] in self._docs or upsert:
                self._docs[query["_id"]] = copy.deepcopy(doc)

    def _matching(self, query):
        query = query or {}
        return [doc for doc in self._docs.values() if all(doc.get(k) == v for k, v in query.items())]

    def find(self, query=None, sort=None, skip=0, limit=0):
        with self._lock:
            docs = self._matching(query)
            if sort:
                field, _direction = sort[0]
                docs.sort(key=lambda d: d[field])
            docs = docs[skip:]
            if limit:
                docs = docs[:limit]
            cursor = FakeCursor([copy.deepcopy(doc) for doc in docs], error=self.query_error)
            self.cursors.append(cursor)
            return cursor

    def find_one(self, query=None):
        if self.query_error is not None:
            raise self.query_error
        with self._lock:
            docs = self._matching(query)
            return copy.deepcopy(docs[0]) if docs else None

    def count_documents(self, query):
        with self._lock:
            return len(self._matching(query))

    def get(self, key):
        with self._lock:
            return copy.deepcopy(self._docs.get(key))

    def keys(self):
        with self._lock:
            return sorted(self._docs)


class FakeDatabase:
    def __init__(self):
        self._collections = {}

    def __getitem__(self, name):
        return self._collections.setdefault(name, FakeCollection())


class FakeAdmin:
    def __init__(self, reachable):
        self.reachable = reachable

    def command(self, name):
        if not self.reachable:
            raise ServerSelectionTimeoutError("localhost:27017: [Errno 111] Connection refused")
        return {"ok": 1.0}


class FakeMongoClient:
    def __init__(self, reachable=True):
        self.admin = FakeAdmin(reachable)
        self._databases = {}
        self.close_calls = 0

    def __getitem__(self, name):
        return self._databases.setdefault(name, FakeDatabase())

    def close(self):
        self.close_calls += 1


class StaticFetcher:
    """
    Fetcher double serving canned responses.

    `responses` maps ids to a body string, an int HTTP status or an exception;
    ids without an entry get a minimal entity body. Tracks concurrent calls.
    """

    def __init__(self, responses=None, delay=0.0):
        self.responses = responses or {}
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def fetch(self, entity_id, cancel_event=None):
        with self._lock:
            self.calls.append(entity_id)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            response = self.responses.get(entity_id)
            if response is None:
                return entity_body(entity_id)
            if isinstance(response, int):
                raise HttpError(entity_id, response)
            if isinstance(response, BaseException):
                raise NetworkError(entity_id, response)
            return response
        finally:
            with self._lock:
                self.in_flight -= 1
