import unittest

from pymongo.errors import AutoReconnect

from wdstore import config
from wdstore.errors import BackendError, ProcessingError
from wdstore.mongo_store import MongoDocumentStore
from wdstore.persist import PersistService
from wdstore.processors import ClaimProcessor
from wdstore.utils import normalize_entity_payload

from tests.fakes import FakeMongoClient, entity_body, item_claim


class ClaimProcessorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = FakeMongoClient()
        self.service = PersistService(MongoDocumentStore(["localhost"], "wikidata", client=self.client))
        self.claims = self.client["wikidata"]["claim"]
        self.processor = ClaimProcessor("P31")
        self.processor.set_persist_service(self.service)

    def _doc(self, entity_id, **kwargs):
        return normalize_entity_payload(entity_id, entity_body(entity_id, **kwargs))

    def test_record_with_target_labels(self) -> None:
        self.service.save_raw(515, entity_body(515, labels={"de": "Mensch", "en": "human"}))
        self.processor.run(self._doc(5, claims={"P31": [item_claim("P31", 515)]}))
        record = self.claims.get("P31-515")
        self.assertEqual(record["property"], "P31")
        self.assertEqual(record["itemid"], 515)
        self.assertEqual([label["language"] for label in record["labels"]], ["en", "de"])
        self.assertEqual(record["labels"][0], {"language": "en", "value": "human"})

    def test_missing_numeric_id(self) -> None:
        self.processor.run(self._doc(7, claims={"P31": [item_claim("P31")]}))
        record = self.claims.get("P31--1")
        self.assertEqual(record["itemid"], -1)
        self.assertNotIn("labels", record)

    def test_missing_datavalue(self) -> None:
        claim = {"mainsnak": {"snaktype": "novalue", "property": "P31"}}
        self.processor.run(self._doc(8, claims={"P31": [claim]}))
        self.assertEqual(self.claims.keys(), ["P31--1"])

    def test_target_not_stored(self) -> None:
        self.processor.run(self._doc(5, claims={"P31": [item_claim("P31", 999)]}))
        self.assertNotIn("labels", self.claims.get("P31-999"))

    def test_target_lookup_failure_is_backend_error(self) -> None:
        self.service.save_raw(515, entity_body(515, labels={"en": "human"}))
        self.client["wikidata"]["item"].query_error = AutoReconnect("connection closed")
        with self.assertRaises(BackendError):
            self.processor.run(self._doc(5, claims={"P31": [item_claim("P31", 515)]}))
        self.assertEqual(self.claims.keys(), [])
        self.assertEqual(self.processor.claims_written, 0)

    def test_other_properties_ignored(self) -> None:
        claims = {
            "P21": [item_claim("P21", 6581097)],
            "P31": [item_claim("P31", 5), item_claim("P31", 215627)],
            "P279": [item_claim("P279", 5)],
        }
        self.processor.run(self._doc(42, claims=claims))
        self.assertEqual(self.claims.keys(), ["P31-215627", "P31-5"])
        self.assertEqual(self.processor.claims_written, 2)

    def test_reprocessing_is_field_equal(self) -> None:
        self.service.save_raw(515, entity_body(515, labels={"en": "human", "fr": "humain", "ja": "ヒト"}))
        doc = self._doc(5, claims={"P31": [item_claim("P31", 515)]})
        self.processor.run(doc)
        first = self.claims.get("P31-515")
        self.processor.run(doc)
        self.assertEqual(self.claims.get("P31-515"), first)
        self.assertEqual(self.claims.keys(), ["P31-515"])

    def test_labels_follow_language_vector(self) -> None:
        labels = {lang: lang.upper() for lang in reversed(config.SUPPORTED_LANGUAGES)}
        labels["nl"] = "NL"
        self.service.save_raw(515, entity_body(515, labels=labels))
        record = self.processor.build_record({"value": {"numeric-id": 515}})
        self.assertEqual(tuple(label["language"] for label in record["labels"]), config.SUPPORTED_LANGUAGES)

    def test_document_without_item(self) -> None:
        with self.assertRaises(ProcessingError):
            self.processor.run({"_id": "wikidata:item:1"})
        with self.assertRaises(ProcessingError):
            self.processor.run({"_id": "wikidata:item:1", "item": {"claims": []}})

    def test_requires_persist_service(self) -> None:
        processor = ClaimProcessor("P31")
        with self.assertRaises(ProcessingError):
            processor.run(self._doc(5, claims={"P31": [item_claim("P31", 1)]}))


if __name__ == "__main__":
    unittest.main()
