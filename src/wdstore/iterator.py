import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait

from tqdm import tqdm

from . import config
from .errors import BackendError, ConfigError, DrainTimeout
from .persist import PersistService
from .processors import ClaimProcessor
from .utils import format_elapsed, iter_windows, to_plain_tree

logger = logging.getLogger(__name__)


class IteratePipeline:
    """
    Re-scan stored entity documents and feed them to item processors.

    Scan positions first_id..last_id (1-based, last_id defaults to count())
    are cut into pages of `page_size`. Every page is one task on a pool of
    `max_workers` threads; the pool is drained once after all pages are queued.
    """

    def __init__(self, conf, persist_service=None, processors=None, page_size=config.ITERATE_PAGE_SIZE, progress=True):
        self.config = conf
        self.page_size = page_size
        self.progress = progress
        self._owns_persist = persist_service is None
        self.persist_service = persist_service
        self.processors = list(processors) if processors else [ClaimProcessor(conf.property)]
        self._lock = threading.Lock()
        self._shutdown = False
        self.summary = {
            "pages": 0,
            "items": 0,
            "processing_errors": 0,
            "page_errors": 0,
            "timed_out": False,
        }

    def _count(self, key, amount=1):
        with self._lock:
            self.summary[key] += amount

    def _process_page(self, start, stop):
        try:
            documents = self.persist_service.load(start - 1, stop - start + 1)
        except Exception as exc:
            self._count("page_errors")
            logger.error("[!] Could not load items %s to %s: %s", start, stop, exc)
            return
        entities = []
        for document in documents:
            try:
                entities.append(to_plain_tree(document))
            except (TypeError, ValueError) as exc:
                self._count("processing_errors")
                logger.error("[!] Error while reading db-object %s: %s", document.get("_id"), exc)
        for processor in self.processors:
            for entity in entities:
                try:
                    processor.run(entity)
                except Exception as exc:
                    self._count("processing_errors")
                    logger.error("[!] Error while processing db-object %s: %s", entity.get("_id"), exc)
                    logger.debug("Offending document: %s", entity, exc_info=True)
        self._count("pages")
        self._count("items", len(entities))

    def run(self):
        """Iterate the configured scan window and return the run summary."""
        if self._shutdown:
            raise RuntimeError("IteratePipeline has been shut down")
        started_at = time.monotonic()
        try:
            if self.persist_service is None:
                self.persist_service = PersistService.from_config(self.config)
            if not self.persist_service.supports_query:
                raise ConfigError(f"Iterating requires the '{config.BACKEND_DOC}' backend, got '{self.config.backend}'")
            logger.info("[*] Start iterating...")
            if self.config.last_id is None:
                total = self.persist_service.count()
                if total < self.config.first_id:
                    logger.info("[-] %s stored item(s), nothing to iterate from position %s.", total, self.config.first_id)
                    return dict(self.summary)
                self.config = self.config.with_last_id(total)
            for line in self.config.describe():
                logger.info("[*] %s", line)

            for processor in self.processors:
                processor.set_persist_service(self.persist_service)

            self._run_pages()
            self._log_claim_status()
        finally:
            self.shutdown()

        logger.info(
            "[+] Iteration finished. %s items in %s pages processed in %s.",
            self.summary["items"],
            self.summary["pages"],
            format_elapsed(time.monotonic() - started_at),
        )
        return dict(self.summary)

    def _run_pages(self):
        windows = list(iter_windows(self.config.first_id, self.config.last_id, self.page_size))
        bar = tqdm(total=len(windows), desc="Iterating pages", unit="page") if self.progress else None
        executor = ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="wdstore-iterate")
        try:
            futures = []
            for start, stop in windows:
                logger.debug("Queueing items %s to %s", start, stop)
                future = executor.submit(self._process_page, start, stop)
                if bar is not None:
                    future.add_done_callback(lambda _f: bar.update(1))
                futures.append(future)
            _done, pending = wait(futures, timeout=self.config.drain_timeout)
            if pending:
                self.summary["timed_out"] = True
                logger.error("[!] Iteration did not drain: %s. Abandoning in-flight pages.",
                             DrainTimeout(len(pending), self.config.drain_timeout))
                executor.shutdown(wait=False, cancel_futures=True)
            else:
                executor.shutdown(wait=True)
        finally:
            if bar is not None:
                bar.close()

    def _log_claim_status(self):
        for processor in self.processors:
            if not isinstance(processor, ClaimProcessor):
                continue
            self.summary["claims_written"] = self.summary.get("claims_written", 0) + processor.claims_written
            try:
                stored = self.persist_service.count(
                    {"property": processor.property_id}, collection=config.CLAIM_COLLECTION
                )
            except BackendError as exc:
                logger.warning("[!] Could not count %s claims: %s", processor.property_id, exc)
                continue
            logger.info("[+] Number of %s claims in DB: %s", processor.property_id, stored)

    def shutdown(self):
        if self._shutdown:
            return
        self._shutdown = True
        if self._owns_persist and self.persist_service is not None:
            self.persist_service.shutdown()
