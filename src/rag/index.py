"""
Core data loading utilities for the pre-embedded study-material index.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import IndexUnavailable

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class PassageRecord:
    """A single embedded excerpt of a study material page."""

    id: str
    material_id: str
    page_number: int
    offset: int
    chunk_index: int
    plain_text: str
    normalized_text: str
    embedding: List[float]
    section_title: Optional[str] = None
    contains_amounts: List[str] = dataclasses.field(default_factory=list)
    key_entities: List[str] = dataclasses.field(default_factory=list)

    @property
    def unique_key(self) -> tuple[str, int, int]:
        return self.material_id, self.page_number, self.chunk_index


def make_passage_id(material_id: str, page_number: int, chunk_index: int) -> str:
    """Stable record id in the form ``materialId#page-chunkIndex``."""
    return f"{material_id}#{page_number}-{chunk_index}"


def _record_from_json(obj: Dict[str, Any]) -> PassageRecord:
    material_id = str(obj["materialId"])
    page_number = int(obj["pageNumber"])
    chunk_index = int(obj.get("chunkIndex", 0))
    if page_number < 1:
        raise ValueError(f"pageNumber must be >= 1, got {page_number}")
    embedding = [float(v) for v in obj["embedding"]]
    return PassageRecord(
        id=str(obj.get("id") or make_passage_id(material_id, page_number, chunk_index)),
        material_id=material_id,
        page_number=page_number,
        offset=int(obj.get("offset", 0)),
        chunk_index=chunk_index,
        plain_text=str(obj.get("plainText", "")),
        normalized_text=str(obj.get("normalizedText", "")),
        embedding=embedding,
        section_title=obj.get("sectionTitle") or None,
        contains_amounts=list(obj.get("containsAmounts") or []),
        key_entities=list(obj.get("keyEntities") or []),
    )


def load_passages(path: Path) -> List[PassageRecord]:
    """
    Load the passage index from a JSON array file.

    Raises IndexUnavailable when the file is missing, is not a JSON array,
    contains a malformed record, mixes embedding dimensions or repeats a
    (materialId, pageNumber, chunkIndex) key. An unreadable index never
    degrades to an empty one.
    """
    path = Path(path)
    if not path.exists():
        raise IndexUnavailable(f"Passage index not found at {path}")

    try:
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise IndexUnavailable(f"Passage index at {path} is unreadable: {e}") from e

    if not isinstance(raw, list):
        raise IndexUnavailable(f"Passage index at {path} must be a JSON array")

    records: List[PassageRecord] = []
    seen: set[tuple[str, int, int]] = set()
    dim: Optional[int] = None
    for i, obj in enumerate(raw):
        try:
            record = _record_from_json(obj)
        except (KeyError, TypeError, ValueError) as e:
            raise IndexUnavailable(f"Malformed passage record #{i} in {path}: {e}") from e

        if dim is None:
            dim = len(record.embedding)
        elif len(record.embedding) != dim:
            raise IndexUnavailable(
                f"Passage record #{i} has embedding dimension {len(record.embedding)}, expected {dim}"
            )
        if record.unique_key in seen:
            raise IndexUnavailable(f"Duplicate passage key {record.unique_key} in {path}")
        seen.add(record.unique_key)
        records.append(record)

    if not records:
        logger.warning("Passage index at %s is empty", path)
    return records
