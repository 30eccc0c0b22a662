import dataclasses
import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import ConfigError

logger = logging.getLogger(__name__)

# HTTP identity and base endpoints
HEADERS = {"User-Agent": "wdstore/1.0 (Wikidata entity importer; https://github.com/wdstore/wdstore)"}
ENTITY_DATA_URL = "https://www.wikidata.org/wiki/Special:EntityData/Q{entity_id}.json"
API_TIMEOUT = 30  # Seconds per HTTP request

# Dispatch sizing
IMPORT_BATCH_SIZE = 2000  # Ids per import batch, drained before the next one
ITERATE_PAGE_SIZE = 10  # Stored documents handled by one iterate task
DRAIN_TIMEOUT_SECONDS = 15 * 60

# Storage layout
DOCUMENT_KEY_PREFIX = "wikidata:item:"
ITEM_COLLECTION = "item"
CLAIM_COLLECTION = "claim"
MONGO_SERVER_SELECTION_TIMEOUT_MS = 5000
SQLITE_SUFFIX = ".sqlite"

# Label priority used when enriching claim records
SUPPORTED_LANGUAGES = ("en", "es", "de", "fr", "ru", "zh", "it", "pt")

# Backend kinds and runtime defaults
BACKEND_KV = "kv"
BACKEND_DOC = "doc"
BACKENDS = (BACKEND_KV, BACKEND_DOC)
DEFAULT_BACKEND = BACKEND_DOC
DEFAULT_ENDPOINTS = {
    BACKEND_KV: ("data",),
    BACKEND_DOC: ("localhost",),
}
DEFAULT_DATABASE = "wikidata"
DEFAULT_FIRST_ID = 1
DEFAULT_MAX_WORKERS = 5
DEFAULT_PROPERTY = "P31"

PID_EXACT_PATTERN = re.compile(r"^P[1-9]\d*$")


@dataclass(frozen=True)
class Config:
    """Validated runtime parameters shared by both pipelines."""

    backend: str = DEFAULT_BACKEND
    endpoints: Tuple[str, ...] = DEFAULT_ENDPOINTS[DEFAULT_BACKEND]
    database: str = DEFAULT_DATABASE
    first_id: int = DEFAULT_FIRST_ID
    last_id: Optional[int] = None
    max_workers: int = DEFAULT_MAX_WORKERS
    property: str = DEFAULT_PROPERTY
    drain_timeout: float = DRAIN_TIMEOUT_SECONDS
    request_timeout: float = API_TIMEOUT

    @classmethod
    def create(
        cls,
        backend=None,
        endpoints=None,
        database=None,
        first_id=None,
        last_id=None,
        max_workers=None,
        property=None,
        drain_timeout=None,
        request_timeout=None,
    ):
        """Normalize raw parameters (CLI or caller supplied) into a Config.

        Unknown backend kinds fall back to the document store, missing
        endpoints to the backend default and worker counts below one to a
        single worker. Id ranges and property ids that cannot be repaired
        raise ConfigError.
        """
        if backend not in BACKENDS:
            if backend is not None:
                logger.warning("[!] Unknown backend kind %r, falling back to %r.", backend, DEFAULT_BACKEND)
            backend = DEFAULT_BACKEND

        if isinstance(endpoints, str):
            endpoints = endpoints.split(",")
        cleaned = tuple(url.strip() for url in endpoints or () if url and url.strip())
        if not cleaned:
            cleaned = DEFAULT_ENDPOINTS[backend]

        database = (database or "").strip() or DEFAULT_DATABASE

        first_id = DEFAULT_FIRST_ID if first_id is None else first_id
        if not isinstance(first_id, int) or isinstance(first_id, bool) or first_id < 1:
            raise ConfigError(f"First id must be a positive integer, got {first_id!r}.")
        if last_id is not None:
            if not isinstance(last_id, int) or isinstance(last_id, bool):
                raise ConfigError(f"Last id must be an integer, got {last_id!r}.")
            if last_id < first_id:
                raise ConfigError(f"Last id {last_id} is smaller than first id {first_id}.")

        if max_workers is None:
            max_workers = DEFAULT_MAX_WORKERS
        elif max_workers < 1:
            logger.warning("[!] Worker count %s is below 1, using a single worker.", max_workers)
            max_workers = 1

        property = (property or DEFAULT_PROPERTY).strip().upper()
        if not PID_EXACT_PATTERN.fullmatch(property):
            raise ConfigError(f"Property id must look like P<number>, got {property!r}.")

        drain_timeout = DRAIN_TIMEOUT_SECONDS if drain_timeout is None else float(drain_timeout)
        if drain_timeout <= 0:
            raise ConfigError(f"Drain timeout must be positive, got {drain_timeout}.")
        request_timeout = API_TIMEOUT if request_timeout is None else float(request_timeout)

        return cls(
            backend=backend,
            endpoints=cleaned,
            database=database,
            first_id=first_id,
            last_id=last_id,
            max_workers=max_workers,
            property=property,
            drain_timeout=drain_timeout,
            request_timeout=request_timeout,
        )

    def with_last_id(self, last_id):
        """Return a copy with last_id resolved (iterate fills it from count())."""
        return dataclasses.replace(self, last_id=last_id)

    def describe(self):
        """Return the parameter lines logged at pipeline start."""
        return [
            f"Database type: {self.backend}",
            f"Server urls: {', '.join(self.endpoints)}",
            f"Database / bucket: {self.database}",
            f"Id range: {self.first_id} - {self.last_id if self.last_id is not None else 'count'}",
            f"Number of threads: {self.max_workers}",
        ]
