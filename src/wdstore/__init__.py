"""Import Wikidata entities into a document store and index their claims."""

from .config import Config
from .importer import ImportPipeline
from .iterator import IteratePipeline
from .persist import PersistHandler, PersistService
from .processors import ClaimProcessor, ItemProcessor

__version__ = "1.0.0"

__all__ = [
    "ClaimProcessor",
    "Config",
    "ImportPipeline",
    "ItemProcessor",
    "IteratePipeline",
    "PersistHandler",
    "PersistService",
]
