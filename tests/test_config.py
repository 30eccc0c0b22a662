import dataclasses
import unittest

from wdstore.config import Config
from wdstore.errors import ConfigError


class ConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        conf = Config.create()
        self.assertEqual(conf.backend, "doc")
        self.assertEqual(conf.endpoints, ("localhost",))
        self.assertEqual(conf.database, "wikidata")
        self.assertEqual(conf.first_id, 1)
        self.assertIsNone(conf.last_id)
        self.assertEqual(conf.max_workers, 5)
        self.assertEqual(conf.property, "P31")
        self.assertEqual(conf.drain_timeout, 900)

    def test_unknown_backend_falls_back_to_doc(self) -> None:
        with self.assertLogs("wdstore.config", level="WARNING"):
            conf = Config.create(backend="couchbase")
        self.assertEqual(conf.backend, "doc")

    def test_endpoint_defaults_per_backend(self) -> None:
        self.assertEqual(Config.create(backend="kv").endpoints, ("data",))
        self.assertEqual(Config.create(backend="doc", endpoints=[]).endpoints, ("localhost",))
        self.assertEqual(Config.create(backend="kv", endpoints=" , ").endpoints, ("data",))

    def test_comma_separated_endpoints(self) -> None:
        conf = Config.create(endpoints="db1:27017, db2:27017")
        self.assertEqual(conf.endpoints, ("db1:27017", "db2:27017"))

    def test_worker_count_below_one(self) -> None:
        with self.assertLogs("wdstore.config", level="WARNING"):
            conf = Config.create(max_workers=0)
        self.assertEqual(conf.max_workers, 1)

    def test_invalid_range(self) -> None:
        with self.assertRaises(ConfigError):
            Config.create(first_id=10, last_id=9)
        with self.assertRaises(ConfigError):
            Config.create(first_id=0)

    def test_invalid_property(self) -> None:
        with self.assertRaises(ConfigError):
            Config.create(property="Q5")
        self.assertEqual(Config.create(property="p279").property, "P279")

    def test_immutable(self) -> None:
        conf = Config.create(first_id=1, last_id=3)
        with self.assertRaises(dataclasses.FrozenInstanceError):
            conf.last_id = 5
        resolved = Config.create().with_last_id(12)
        self.assertEqual(resolved.last_id, 12)


if __name__ == "__main__":
    unittest.main()
