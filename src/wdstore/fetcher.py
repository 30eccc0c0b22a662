import logging

import requests
from requests.adapters import HTTPAdapter

from . import config
from .errors import FetchCancelled, HttpError, NetworkError, UnknownError
from .utils import build_entity_url

logger = logging.getLogger(__name__)


class EntityFetcher:
    """
    Fetch EntityData JSON for one numeric id per call.

    One pooled requests.Session is shared by every worker; the fetcher keeps no
    per-call state. No retries: failures are classified and raised.
    """

    def __init__(self, session=None, timeout=config.API_TIMEOUT, pool_size=config.DEFAULT_MAX_WORKERS):
        self.timeout = timeout
        self._owns_session = session is None
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=1, pool_maxsize=max(1, pool_size))
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            session.headers.update(config.HEADERS)
        self.session = session

    @classmethod
    def from_config(cls, conf):
        return cls(timeout=conf.request_timeout, pool_size=conf.max_workers)

    def fetch(self, entity_id, cancel_event=None):
        """Return the response body for Q<entity_id> as a UTF-8 string."""
        if cancel_event is not None and cancel_event.is_set():
            raise FetchCancelled(entity_id)
        url = build_entity_url(entity_id)
        logger.debug("Loading item %s from %s", entity_id, url)
        try:
            response = self.session.get(url, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise NetworkError(entity_id, exc) from exc
        except Exception as exc:
            raise UnknownError(entity_id, exc) from exc
        if response.status_code >= 400:
            raise HttpError(entity_id, response.status_code)
        try:
            return response.content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise UnknownError(entity_id, exc) from exc

    def close(self):
        if self._owns_session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
