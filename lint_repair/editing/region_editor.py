"""
Region editor — partitions issues by document region and splices fixes back.

A region is the smallest top-level subtree that can be repaired on its own:
a single top-level field (``info``, ``components``), or a single entry of a
collection field (``paths./users``).  Only that subtree is sent to the LLM,
and only that subtree is written back, so the rest of the document stays
exactly as it was.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ..errors import RegionNotFound, UnparsableRewrite
from ..issues import Issue

logger = logging.getLogger(__name__)

ROOT_FIELD = "$root"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RegionKey:
    """Identifies a region: a top-level field, or one entry of a collection."""
    field: str
    entry: Optional[str] = None   # e.g. "/users" under "paths"

    @property
    def is_root(self) -> bool:
        return self.field == ROOT_FIELD

    def __str__(self) -> str:
        if self.entry is None:
            return self.field
        return f"{self.field}.{self.entry}"


ROOT_REGION = RegionKey(ROOT_FIELD)


@dataclass(frozen=True)
class IssueBatch:
    """Up to ``chunk_size`` issues from one region, sent in one rewrite call."""
    region: RegionKey
    index: int      # 0-indexed within the region
    total: int      # number of batches for the region
    issues: tuple

    @property
    def label(self) -> str:
        return f"{self.region} [batch {self.index + 1}/{self.total}]"


# ---------------------------------------------------------------------------
# RegionEditor
# ---------------------------------------------------------------------------

class RegionEditor:
    """Issue partitioning and region-level extract/merge on a document tree."""

    def __init__(
        self,
        chunk_size: int = 5,
        collection_fields: Sequence[str] = ("paths", "webhooks"),
    ):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        self.chunk_size = chunk_size
        self.collection_fields = frozenset(collection_fields)

    def region_key(self, issue: Issue) -> RegionKey:
        """Map an issue to its region; a pure function of the issue path."""
        segments = issue.segments
        if not segments:
            return ROOT_REGION
        head = str(segments[0])
        if head in self.collection_fields and len(segments) > 1:
            return RegionKey(head, str(segments[1]))
        return RegionKey(head)

    def partition(self, issues: Sequence[Issue]) -> list[IssueBatch]:
        """Group issues by region and split each group into batches.

        Regions appear in the order they are first encountered; all batches
        of a region are consecutive and keep the issues' relative order.
        """
        groups: dict[RegionKey, list[Issue]] = {}
        for issue in issues:
            groups.setdefault(self.region_key(issue), []).append(issue)

        batches: list[IssueBatch] = []
        for region, group in groups.items():
            total = (len(group) + self.chunk_size - 1) // self.chunk_size
            for index in range(total):
                start = index * self.chunk_size
                batches.append(IssueBatch(
                    region=region,
                    index=index,
                    total=total,
                    issues=tuple(group[start:start + self.chunk_size]),
                ))

        logger.debug(
            "[RegionEditor] %d issue(s) -> %d region(s), %d batch(es)",
            len(issues), len(groups), len(batches),
        )
        return batches

    def extract(self, document: Any, key: RegionKey) -> Any:
        """Return a deep-copied minimal sub-document holding only *key*'s region."""
        if key.is_root:
            return copy.deepcopy(document)

        node = self._lookup(document, key)
        if key.entry is None:
            return {key.field: copy.deepcopy(node)}
        return {key.field: {key.entry: copy.deepcopy(node)}}

    def merge(self, document: Any, key: RegionKey, fixed: Any) -> Any:
        """Write *fixed*'s copy of the region back into *document* in place.

        Only the region's own keys are touched: sibling collection entries
        and other top-level fields are left alone, and existing keys keep
        their position.  Returns *document* for convenience.
        """
        if not isinstance(fixed, dict):
            raise UnparsableRewrite(
                f"Rewrite for {key} is not a mapping", region=str(key),
            )

        if key.is_root:
            if not isinstance(document, dict):
                raise RegionNotFound("Document root is not a mapping", region=str(key))
            for name, value in fixed.items():
                document[name] = copy.deepcopy(value)
            return document

        # Resolve first so a stale key fails before anything is written.
        self._lookup(document, key)
        replacement = self._region_value(fixed, key)

        extra = [k for k in fixed if k != key.field]
        if key.entry is not None and isinstance(fixed.get(key.field), dict):
            extra += [f"{key.field}.{k}" for k in fixed[key.field] if k != key.entry]
        if extra:
            logger.warning(
                "[RegionEditor] Ignoring keys outside region %s: %s",
                key, ", ".join(str(e) for e in extra),
            )

        if key.entry is None:
            document[key.field] = copy.deepcopy(replacement)
        else:
            document[key.field][key.entry] = copy.deepcopy(replacement)
        return document

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _lookup(document: Any, key: RegionKey) -> Any:
        if not isinstance(document, dict) or key.field not in document:
            raise RegionNotFound(
                f"Region {key} not found: no top-level field {key.field!r}",
                region=str(key),
            )
        node = document[key.field]
        if key.entry is None:
            return node
        if not isinstance(node, dict) or key.entry not in node:
            raise RegionNotFound(
                f"Region {key} not found: no entry {key.entry!r} under {key.field!r}",
                region=str(key),
            )
        return node[key.entry]

    @staticmethod
    def _region_value(fixed: dict, key: RegionKey) -> Any:
        if key.field not in fixed:
            raise UnparsableRewrite(
                f"Rewrite for {key} does not contain field {key.field!r}",
                region=str(key),
            )
        value = fixed[key.field]
        if key.entry is None:
            return value
        if not isinstance(value, dict) or key.entry not in value:
            raise UnparsableRewrite(
                f"Rewrite for {key} does not contain entry {key.entry!r}",
                region=str(key),
            )
        return value[key.entry]
