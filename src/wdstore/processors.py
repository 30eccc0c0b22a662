import logging
import threading

from . import config
from .errors import ProcessingError
from .utils import build_claim_id, build_document_key, extract_numeric_id, pick_labels, safe_get

logger = logging.getLogger(__name__)


class ItemProcessor:
    """Consumes one stored entity document ({_id, item}) at a time."""

    def __init__(self):
        self.persist_service = None

    def set_persist_service(self, persist_service):
        self.persist_service = persist_service

    def run(self, entity_doc):
        raise NotImplementedError


class ClaimProcessor(ItemProcessor):
    """
    Extract the claims of one property into claim records.

    Every claim whose mainsnak.property matches becomes
    {_id: "<property>-<numeric-id>", property, itemid, labels}, where labels are
    taken from the claim's target entity in language priority order. Records
    are upserted, so re-processing an entity rewrites the same documents.
    """

    def __init__(self, property_id, languages=config.SUPPORTED_LANGUAGES):
        super().__init__()
        self.property_id = property_id
        self.languages = tuple(languages)
        self._lock = threading.Lock()
        self.claims_written = 0

    def run(self, entity_doc):
        item = entity_doc.get("item") if isinstance(entity_doc, dict) else None
        if not isinstance(item, dict):
            raise ProcessingError("Stored document has no item object", entity_doc)
        logger.debug("Processing item: %s", item.get("title"))
        claims = item.get("claims") or {}
        if not isinstance(claims, dict):
            raise ProcessingError("Item claims must be an object", entity_doc)
        for group in claims.values():
            if not isinstance(group, list):
                continue
            for claim in group:
                if safe_get(claim, "mainsnak", "property") == self.property_id:
                    self.insert_claim(safe_get(claim, "mainsnak", "datavalue"))

    def build_record(self, datavalue):
        item_id = extract_numeric_id(datavalue)
        record = {
            "_id": build_claim_id(self.property_id, item_id),
            "property": self.property_id,
            "itemid": item_id,
        }
        target = self._lookup_target(item_id)
        if target is not None:
            record["labels"] = pick_labels(target, self.languages)
            logger.debug("Labels added to claim %s: %s", record["_id"], record["labels"])
        return record

    def insert_claim(self, datavalue):
        if self.persist_service is None:
            raise ProcessingError("ClaimProcessor used before a persist service was set")
        record = self.build_record(datavalue)
        logger.debug("Inserting claim: %s", record["_id"])
        self.persist_service.save_doc(record, collection=config.CLAIM_COLLECTION)
        with self._lock:
            self.claims_written += 1
        return record

    def _lookup_target(self, item_id):
        if item_id < 0:
            return None
        found = self.persist_service.find_one({"_id": build_document_key(item_id)}, collection=config.ITEM_COLLECTION)
        if found is None:
            return None
        return found.get("item") or {}
