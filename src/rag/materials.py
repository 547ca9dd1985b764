"""
Material catalog: canonical material ids and their page counts.

Index builds over the years wrote the same document under several ids
(``StudyCompanion.pdf``, ``study_companion``, ...). Backends resolve every
passage through the catalog so those variants collapse onto one id, and
passages pointing past the end of a material are dropped.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Tuple

from .retriever import RetrievedPassage

logger = logging.getLogger(__name__)

FILE_EXTENSION_RE = re.compile(r"\.(html|pdf|txt)$", re.IGNORECASE)


@dataclass
class Material:
    """A study document the index may point into."""

    id: str
    page_count: Optional[int] = None
    aliases: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()

    def matches(self, clean_id: str) -> bool:
        lower = clean_id.lower()
        if any(x.lower() in lower for x in self.exclude):
            return False
        return clean_id == self.id or any(a.lower() in lower for a in self.aliases)


@dataclass
class MaterialCatalog:
    """
    Known materials. An empty catalog accepts any id and any page >= 1,
    only stripping file extensions.
    """

    materials: List[Material] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.materials)

    @classmethod
    def from_json(cls, data: Any) -> "MaterialCatalog":
        """Build from a JSON array of ``{id, pageCount?, aliases?, exclude?}`` objects."""
        if not isinstance(data, list):
            raise ValueError("Material catalog must be a JSON array")
        materials = []
        for entry in data:
            if not isinstance(entry, dict) or not entry.get("id"):
                raise ValueError(f"Material catalog entry needs an 'id': {entry!r}")
            page_count = entry.get("pageCount")
            materials.append(
                Material(
                    id=str(entry["id"]),
                    page_count=int(page_count) if page_count is not None else None,
                    aliases=tuple(str(a) for a in entry.get("aliases") or ()),
                    exclude=tuple(str(x) for x in entry.get("exclude") or ()),
                )
            )
        return cls(materials)

    @classmethod
    def from_file(cls, path: Path) -> "MaterialCatalog":
        with Path(path).open("r", encoding="utf-8") as f:
            return cls.from_json(json.load(f))

    def canonical_id(self, raw_id: Optional[str]) -> Optional[str]:
        """Canonical id for a raw material id, or None when the catalog does not know it."""
        if not raw_id:
            return None if self.materials else ""
        clean = FILE_EXTENSION_RE.sub("", raw_id)
        if not self.materials:
            return clean
        for material in self.materials:
            if material.matches(clean):
                return material.id
        return None

    def valid_page(self, material_id: str, page: int) -> bool:
        if page < 1:
            return False
        limit = next((m.page_count for m in self.materials if m.id == material_id), None)
        return limit is None or page <= limit

    def resolve(self, passage: RetrievedPassage) -> Optional[RetrievedPassage]:
        """Passage with its canonical material id, or None when it must be dropped."""
        material_id = self.canonical_id(passage.material_id)
        if material_id is None or not self.valid_page(material_id, passage.page):
            logger.debug(
                "Dropping passage with unknown material or page: %s p%s",
                passage.material_id,
                passage.page,
            )
            return None
        if material_id == passage.material_id:
            return passage
        return dataclasses.replace(passage, material_id=material_id)


DEFAULT_MATERIAL_CATALOG = MaterialCatalog(
    [
        Material(
            id="UKFR_ED32_Study_Companion",
            page_count=117,
            aliases=("studycompanion", "study_companion"),
        ),
        Material(
            id="UKFR_ED32_Checkpoint",
            page_count=44,
            aliases=("checkpoint",),
            exclude=("backup",),
        ),
    ]
)
