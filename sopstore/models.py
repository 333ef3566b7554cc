"""
Document envelope and version token primitives.
"""

import copy
import json
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .exceptions import InvalidDocument

# Opaque value issued by a versioned backend on read (GitHub blob SHA, Drive
# file version). Callers never inspect it, only hand it back on write.
VersionToken = str

ID_PREFIX = "sop"
ENVELOPE_KEYS = ("id", "meta", "savedAt", "body")

_id_lock = threading.Lock()
_last_id_millis = 0


def new_document_id(prefix: str = ID_PREFIX) -> str:
    """Generate a time-based id, strictly increasing within this process."""
    global _last_id_millis
    with _id_lock:
        millis = int(time.time() * 1000)
        if millis <= _last_id_millis:
            millis = _last_id_millis + 1
        _last_id_millis = millis
    return f"{prefix}-{millis}"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Document:
    """
    A stored SOP record.

    ``id`` mirrors ``meta.sopId``. Unknown top-level keys are kept in
    ``extra`` so documents written by other clients survive a round trip.
    ``version`` is the token the document was read with; it is not part of
    the JSON and is ignored by equality.
    """
    id: Optional[str]
    meta: Dict[str, Any] = field(default_factory=dict)
    saved_at: Optional[str] = None
    body: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)
    version: Optional[VersionToken] = field(default=None, compare=False)

    @property
    def title(self) -> str:
        return self.meta.get("title") or self.id or ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "meta": copy.deepcopy(self.meta)}
        if self.saved_at is not None:
            data["savedAt"] = self.saved_at
        if self.body is not None:
            data["body"] = copy.deepcopy(self.body)
        for key, value in self.extra.items():
            data[key] = copy.deepcopy(value)
        return data

    def to_json(self) -> str:
        """Pretty-printed form written to ``<id>.json``."""
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    @classmethod
    def from_dict(
        cls,
        data: Any,
        fallback_id: Optional[str] = None,
        version: Optional[VersionToken] = None,
    ) -> "Document":
        if not isinstance(data, dict):
            raise InvalidDocument("Document must be a JSON object")

        meta = data.get("meta")
        if not isinstance(meta, dict):
            raise InvalidDocument("Document is missing its meta block")
        meta = copy.deepcopy(meta)

        doc_id = data.get("id") or None
        sop_id = meta.get("sopId") or None
        for name, value in (("id", doc_id), ("meta.sopId", sop_id)):
            if value is not None and not isinstance(value, str):
                raise InvalidDocument(f"Document {name} must be a string, got {type(value).__name__}")
        if doc_id and sop_id and doc_id != sop_id:
            raise InvalidDocument(
                f"Document id '{doc_id}' does not match meta.sopId '{sop_id}'",
                {"id": doc_id, "sopId": sop_id},
            )

        resolved_id = doc_id or sop_id or fallback_id
        if resolved_id:
            meta["sopId"] = resolved_id

        return cls(
            id=resolved_id,
            meta=meta,
            saved_at=data.get("savedAt"),
            body=copy.deepcopy(data.get("body")),
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in ENVELOPE_KEYS},
            version=version,
        )

    @classmethod
    def from_json(
        cls,
        text: str,
        fallback_id: Optional[str] = None,
        version: Optional[VersionToken] = None,
    ) -> "Document":
        if not text or not text.strip():
            raise InvalidDocument("Document file is empty")
        try:
            data = json.loads(text)
        except ValueError as e:
            raise InvalidDocument(f"Document is not valid JSON: {e}")
        return cls.from_dict(data, fallback_id=fallback_id, version=version)

    def prepared_for_save(self) -> "Document":
        """Copy with id assigned and savedAt stamped where absent, meta.sopId synced."""
        doc_id = self.id or new_document_id()
        meta = copy.deepcopy(self.meta)
        meta["sopId"] = doc_id
        return replace(self, id=doc_id, meta=meta, saved_at=self.saved_at or utc_timestamp())

    def touched(self) -> "Document":
        """Copy with a fresh savedAt."""
        return replace(self, saved_at=utc_timestamp())

    def with_version(self, version: Optional[VersionToken]) -> "Document":
        return replace(self, version=version)


def validate_document_id(doc_id: str) -> str:
    """Reject ids that cannot map to a single ``<id>.json`` file name."""
    if not isinstance(doc_id, str):
        raise InvalidDocument(f"Document id must be a string, got {type(doc_id).__name__}")
    if not doc_id.strip():
        raise InvalidDocument("Document id must not be empty")
    if "/" in doc_id or "\\" in doc_id or doc_id in (".", ".."):
        raise InvalidDocument(f"Document id '{doc_id}' is not a valid file name")
    return doc_id


def file_name_for(doc_id: str) -> str:
    return f"{validate_document_id(doc_id)}.json"


def id_from_file_name(name: str) -> str:
    return name[:-len(".json")] if name.endswith(".json") else name
