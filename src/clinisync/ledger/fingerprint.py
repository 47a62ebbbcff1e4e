"""Content fingerprints for change detection.

Identity/provenance fields say where a record came from, not what it
contains, so they are dropped before hashing. Keys are sorted at every level
and missing values become JSON null, so key order never changes the hash.
"""
import hashlib
import json
from typing import Any, Mapping, Union

from clinisync.models.records import SourceRecord

PROVENANCE_FIELDS = frozenset({"id", "source", "sourceId", "source_id"})


def fingerprint(record: Union[SourceRecord, Mapping[str, Any]]) -> str:
    """Return the SHA-256 hex digest of a record's semantic fields."""
    data = record.data if isinstance(record, SourceRecord) else record
    relevant = {k: v for k, v in data.items() if k not in PROVENANCE_FIELDS}
    canonical = json.dumps(
        _normalize(relevant),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _normalize(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value
