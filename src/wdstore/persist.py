import logging

from . import config
from .errors import UnsupportedOperationError

logger = logging.getLogger(__name__)


class PersistHandler:
    """
    Storage interface used by the pipelines.

    Concrete handlers override what they support; the rest fails with
    UnsupportedOperationError. `supports_query` tells the iterate pipeline
    whether load, count and the find operations are available.
    """

    kind = None
    supports_query = False

    def save_raw(self, entity_id, body):
        raise UnsupportedOperationError(f"{type(self).__name__} does not support save_raw")

    def save_doc(self, doc, collection=config.CLAIM_COLLECTION):
        raise UnsupportedOperationError(f"{type(self).__name__} does not support save_doc")

    def load(self, offset, limit):
        raise UnsupportedOperationError(f"{type(self).__name__} does not support load")

    def count(self, query=None, collection=config.ITEM_COLLECTION):
        raise UnsupportedOperationError(f"{type(self).__name__} does not support count")

    def find(self, query, collection=config.ITEM_COLLECTION):
        raise UnsupportedOperationError(f"{type(self).__name__} does not support find")

    def find_one(self, query, collection=config.ITEM_COLLECTION):
        raise UnsupportedOperationError(f"{type(self).__name__} does not support find_one")

    def shutdown(self):
        raise NotImplementedError


def create_handler(conf):
    """Instantiate the backend selected by conf.backend."""
    if conf.backend == config.BACKEND_KV:
        from .kv_store import SQLiteKeyValueStore

        return SQLiteKeyValueStore.from_config(conf)
    from .mongo_store import MongoDocumentStore

    return MongoDocumentStore.from_config(conf)


class PersistService:
    """Facade over one PersistHandler; safe to share across worker threads."""

    def __init__(self, handler):
        self.handler = handler

    @classmethod
    def from_config(cls, conf):
        logger.info("[*] Opening %s backend at %s (db=%s).", conf.backend, ", ".join(conf.endpoints), conf.database)
        return cls(create_handler(conf))

    @property
    def supports_query(self):
        return self.handler.supports_query

    def save_raw(self, entity_id, body):
        self.handler.save_raw(entity_id, body)

    def save_doc(self, doc, collection=config.CLAIM_COLLECTION):
        self.handler.save_doc(doc, collection=collection)

    def load(self, offset, limit):
        return self.handler.load(offset, limit)

    def count(self, query=None, collection=config.ITEM_COLLECTION):
        return self.handler.count(query=query, collection=collection)

    def find(self, query, collection=config.ITEM_COLLECTION):
        return self.handler.find(query, collection=collection)

    def find_one(self, query, collection=config.ITEM_COLLECTION):
        return self.handler.find_one(query, collection=collection)

    def shutdown(self):
        self.handler.shutdown()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False
