import logging
import threading

from pymongo import ASCENDING, MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from . import config
from .errors import BackendError, BackendInitError, BackendUnavailableError, BackendWriteError
from .persist import PersistHandler
from .utils import normalize_entity_payload

logger = logging.getLogger(__name__)


class MongoDocumentStore(PersistHandler):
    """
    Document-store backend on MongoDB.

    Entity documents ({_id: wikidata:item:<id>, item: {...}}) live in the `item`
    collection, derived records in `claim`. Writes are upserts: insert first,
    overwrite when the key already exists.
    """

    kind = config.BACKEND_DOC
    supports_query = True

    def __init__(self, endpoints, database, client=None):
        self.endpoints = list(endpoints)
        self.database_name = database
        self._lock = threading.Lock()
        self._closed = False
        self._init_error = None
        self._client = client
        self._db = None
        try:
            if self._client is None:
                self._client = MongoClient(
                    self.endpoints,
                    serverSelectionTimeoutMS=config.MONGO_SERVER_SELECTION_TIMEOUT_MS,
                )
            self._client.admin.command("ping")
            self._db = self._client[self.database_name]
        except PyMongoError as exc:
            self._init_error = BackendInitError(f"Can not connect to MongoDB at {', '.join(self.endpoints)}", exc)
            logger.error("[!] Error while connecting to MongoDB (%s): %s", ", ".join(self.endpoints), exc)

    @classmethod
    def from_config(cls, conf):
        return cls(conf.endpoints, conf.database)

    def _collection(self, name):
        if self._init_error is not None:
            raise BackendUnavailableError("MongoDB backend is not available", self._init_error)
        if self._closed:
            raise BackendUnavailableError("MongoDB backend has been shut down")
        return self._db[name]

    def _upsert(self, collection_name, doc):
        collection = self._collection(collection_name)
        try:
            collection.insert_one(doc)
        except DuplicateKeyError:
            logger.info("Item %s exists and is updated", doc["_id"])
            try:
                collection.replace_one({"_id": doc["_id"]}, doc, upsert=True)
            except PyMongoError as exc:
                raise BackendWriteError(f"Error while updating {doc['_id']}", exc) from exc
        except PyMongoError as exc:
            raise BackendWriteError(f"Error while saving {doc['_id']}", exc) from exc

    def save_raw(self, entity_id, body):
        try:
            doc = normalize_entity_payload(entity_id, body)
        except (ValueError, TypeError) as exc:
            raise BackendWriteError(f"Item {entity_id} is not a valid EntityData document", exc) from exc
        self._upsert(config.ITEM_COLLECTION, doc)

    def save_doc(self, doc, collection=config.CLAIM_COLLECTION):
        if "_id" not in doc:
            raise BackendWriteError("Document has no _id")
        self._upsert(collection, doc)

    def load(self, offset, limit):
        if limit <= 0:
            return []
        collection = self._collection(config.ITEM_COLLECTION)
        try:
            cursor = collection.find({}, sort=[("_id", ASCENDING)], skip=max(0, offset), limit=limit)
            try:
                return list(cursor)
            finally:
                cursor.close()
        except PyMongoError as exc:
            raise BackendError(f"Error while loading {limit} items from offset {offset}", exc) from exc

    def count(self, query=None, collection=config.ITEM_COLLECTION):
        try:
            return self._collection(collection).count_documents(query or {})
        except PyMongoError as exc:
            raise BackendError(f"Error while counting {collection}", exc) from exc

    def find(self, query, collection=config.ITEM_COLLECTION):
        target = self._collection(collection)
        try:
            cursor = target.find(dict(query))
            try:
                return list(cursor)
            finally:
                cursor.close()
        except PyMongoError as exc:
            raise BackendError(f"Error while querying {collection}", exc) from exc

    def find_one(self, query, collection=config.ITEM_COLLECTION):
        target = self._collection(collection)
        try:
            return target.find_one(dict(query))
        except PyMongoError as exc:
            raise BackendError(f"Error while querying {collection}", exc) from exc

    def shutdown(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._client is not None:
            self._client.close()
        logger.info("[*] MongoDB client closed.")
