import json
import re
import time
from datetime import datetime, timezone

from . import config


def utc_now_iso():
    """Return a UTC timestamp string in ISO 8601 format (second precision)."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_document_key(entity_id):
    """Return the storage key of an entity, e.g. wikidata:item:42."""
    return f"{config.DOCUMENT_KEY_PREFIX}{int(entity_id)}"


def build_claim_id(property_id, item_id):
    """Return the primary key of a claim record, e.g. P31-515 or P31--1."""
    return f"{property_id}-{int(item_id)}"


def build_entity_url(entity_id):
    return config.ENTITY_DATA_URL.format(entity_id=int(entity_id))


def safe_get(payload, *keys, default=None):
    """Traverse nested dicts safely and return default on missing keys."""
    cur = payload
    for key in keys:
        if not isinstance(cur, dict) or key not in cur:
            return default
        cur = cur[key]
    return cur


def extract_entity(payload):
    """
    Return the entity object wrapped by an EntityData response.
    The response is {"entities": {"Q<id>": {...}}}; the inner object of the first
    entry is the entity proper.
    """
    if not isinstance(payload, dict) or not payload:
        raise ValueError("EntityData payload must be a non-empty JSON object")
    wrapper = next(iter(payload.values()))
    if not isinstance(wrapper, dict) or not wrapper:
        raise ValueError("EntityData payload has no entity map")
    entity = next(iter(wrapper.values()))
    if not isinstance(entity, dict):
        raise ValueError("EntityData entity must be a JSON object")
    return entity


def normalize_entity_payload(entity_id, body):
    """Parse a fetched body into the stored document shape {_id, item}."""
    payload = json.loads(body) if isinstance(body, (str, bytes, bytearray)) else body
    return {
        "_id": build_document_key(entity_id),
        "item": extract_entity(payload),
    }


def extract_numeric_id(datavalue):
    """Return datavalue.value.numeric-id as int, or -1 when absent or not numeric."""
    raw = safe_get(datavalue, "value", "numeric-id")
    if isinstance(raw, bool):
        return -1
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and re.fullmatch(r"-?\d+", raw.strip()):
        return int(raw.strip())
    return -1


def pick_labels(entity, languages=config.SUPPORTED_LANGUAGES):
    """Return label objects of an entity in language priority order, skipping absent ones."""
    labels = safe_get(entity, "labels", default={})
    if not isinstance(labels, dict):
        return []
    return [labels[lang] for lang in languages if labels.get(lang) is not None]


def _json_default(obj):
    """JSON serializer fallback for BSON types (datetime, ObjectId, Int64...)."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


def to_plain_tree(document):
    """Return a detached, JSON-compatible copy of a stored document."""
    return json.loads(json.dumps(document, ensure_ascii=False, default=_json_default))


def iter_windows(first, last, size):
    """
    Yield inclusive (start, stop) windows of at most `size` values covering [first, last].
    Windows are contiguous and disjoint: each value appears in exactly one window.
    """
    if size < 1:
        raise ValueError(f"Window size must be positive, got {size}")
    start = first
    while start <= last:
        stop = min(start + size - 1, last)
        yield start, stop
        start = stop + 1


def format_elapsed(seconds):
    """Return compact HH:MM:SS elapsed display."""
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def rate_per_second(count, started_at):
    elapsed = time.monotonic() - started_at
    if elapsed <= 0:
        return 0.0
    return count / elapsed
