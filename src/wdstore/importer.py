import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait

from tqdm import tqdm

from . import config
from .errors import BackendError, DrainTimeout, FetchCancelled, HttpError, NetworkError
from .fetcher import EntityFetcher
from .persist import PersistService
from .utils import format_elapsed, iter_windows, rate_per_second

logger = logging.getLogger(__name__)


class ImportPipeline:
    """
    Import EntityData documents for an id range into the configured backend.

    The range is cut into batches of `batch_size` ids. Each batch gets a fresh
    worker pool of `max_workers` threads (one task per id: fetch, then
    save_raw) and is drained before the next batch is dispatched.
    """

    def __init__(self, conf, persist_service=None, fetcher=None, batch_size=config.IMPORT_BATCH_SIZE, progress=True):
        self.config = conf
        self.batch_size = batch_size
        self.progress = progress
        self._owns_persist = persist_service is None
        self._owns_fetcher = fetcher is None
        self.persist_service = persist_service
        self.fetcher = fetcher
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._shutdown = False
        self.in_flight = 0
        self.max_in_flight = 0
        self.batches = []
        self.summary = {
            "dispatched": 0,
            "saved": 0,
            "http_errors": 0,
            "network_errors": 0,
            "unknown_errors": 0,
            "write_errors": 0,
            "cancelled": 0,
            "batches": 0,
            "timed_out": False,
        }

    @property
    def last_id(self):
        if self.config.last_id is None:
            return self.config.first_id
        return self.config.last_id

    def _count(self, key):
        with self._lock:
            self.summary[key] += 1

    def _import_item(self, entity_id):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            body = self.fetcher.fetch(entity_id, cancel_event=self._cancel)
            self.persist_service.save_raw(entity_id, body)
            self._count("saved")
            logger.debug("Item %s saved in db.", entity_id)
        except HttpError as exc:
            self._count("http_errors")
            logger.warning("[!] Item %s was not exported. HTTP error: %s", entity_id, exc.status)
        except NetworkError as exc:
            self._count("network_errors")
            logger.warning("[!] Item %s was not exported, maybe a network problem: %s", entity_id, exc.cause)
        except FetchCancelled:
            self._count("cancelled")
            logger.debug("Item %s skipped, import cancelled.", entity_id)
        except BackendError as exc:
            self._count("write_errors")
            logger.error("[!] Item %s was fetched but not stored: %s", entity_id, exc)
        except Exception as exc:
            self._count("unknown_errors")
            logger.warning("[!] Item %s was not exported. Unknown error: %s", entity_id, exc)
            logger.debug("Stacktrace:", exc_info=True)
        finally:
            with self._lock:
                self.in_flight -= 1

    def _run_batch(self, start, stop, bar):
        logger.info("[*] Importing items %s to %s...", start, stop)
        executor = ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="wdstore-import")
        futures = []
        for entity_id in range(start, stop + 1):
            future = executor.submit(self._import_item, entity_id)
            if bar is not None:
                future.add_done_callback(lambda _f: bar.update(1))
            futures.append(future)
        with self._lock:
            self.summary["dispatched"] += len(futures)

        _done, pending = wait(futures, timeout=self.config.drain_timeout)
        if pending:
            timeout = DrainTimeout(len(pending), self.config.drain_timeout)
            logger.error("[!] Batch %s-%s did not drain: %s. Abandoning in-flight work.", start, stop, timeout)
            self._cancel.set()
            executor.shutdown(wait=False, cancel_futures=True)
            return False
        executor.shutdown(wait=True)
        with self._lock:
            self.summary["batches"] += 1
            self.batches.append({"start": start, "stop": stop, "in_flight": self.in_flight})
        return True

    def run(self):
        """Import [first_id, last_id] and return the run summary."""
        if self._shutdown:
            raise RuntimeError("ImportPipeline has been shut down")
        started_at = time.monotonic()
        try:
            if self.persist_service is None:
                self.persist_service = PersistService.from_config(self.config)
            if self.fetcher is None:
                self.fetcher = EntityFetcher.from_config(self.config)
            for line in self.config.describe():
                logger.info("[*] %s", line)

            first, last = self.config.first_id, self.last_id
            bar = tqdm(total=last - first + 1, desc="Importing items", unit="item") if self.progress else None
            try:
                for start, stop in iter_windows(first, last, self.batch_size):
                    if not self._run_batch(start, stop, bar):
                        self.summary["timed_out"] = True
                        break
            finally:
                if bar is not None:
                    bar.close()
        finally:
            self.shutdown()

        elapsed = time.monotonic() - started_at
        logger.info(
            "[+] Import finished. %s of %s items imported in %s (%.2f items/s).",
            self.summary["saved"],
            self.summary["dispatched"],
            format_elapsed(elapsed),
            rate_per_second(self.summary["saved"], started_at),
        )
        return dict(self.summary)

    def shutdown(self):
        """Release the backend and HTTP client created by this pipeline; idempotent."""
        if self._shutdown:
            return
        self._shutdown = True
        self._cancel.set()
        try:
            if self._owns_fetcher and self.fetcher is not None:
                self.fetcher.close()
        finally:
            if self._owns_persist and self.persist_service is not None:
                self.persist_service.shutdown()
