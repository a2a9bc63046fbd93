"""Tag lookup over a board snapshot."""

from __future__ import annotations

import hashlib
from collections import Counter
from typing import Iterable

from .board import WorkItem


def content_key(items: Iterable[WorkItem]) -> str:
    """Hash of every item's id and tags, independent of iteration order."""
    digest = hashlib.sha256()
    for item_id, tags in sorted((item.id, tuple(item.tags)) for item in items):
        digest.update(item_id.encode("utf-8"))
        digest.update(b"\0")
        digest.update("\x1f".join(tags).encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()


class TagIndex:
    """Caches tag lists for the snapshot it was last asked about.

    The cache is keyed by ``content_key``, so two snapshots of the same size
    but with different tags never share an entry.
    """

    def __init__(self, max_entries: int = 5) -> None:
        self.max_entries = max_entries
        self._counts: dict[str, Counter[str]] = {}

    def _tag_counts(self, items: Iterable[WorkItem]) -> Counter[str]:
        items = list(items)
        key = content_key(items)
        counts = self._counts.get(key)
        if counts is None:
            counts = Counter(tag for item in items for tag in item.tags)
            self._counts[key] = counts
            while len(self._counts) > self.max_entries:
                self._counts.pop(next(iter(self._counts)))
        return counts

    def all_tags(self, items: Iterable[WorkItem]) -> list[str]:
        return sorted(self._tag_counts(items))

    def matching_tags(
        self, items: Iterable[WorkItem], prefix: str, *, limit: int = 8
    ) -> list[str]:
        if not prefix:
            return []
        needle = prefix.lstrip("#").lower()
        matches = [tag for tag in self.all_tags(items) if tag.lower().startswith(needle)]
        return matches[:limit]

    def popular_tags(self, items: Iterable[WorkItem], *, limit: int = 10) -> list[str]:
        counts = self._tag_counts(items)
        ranked = sorted(counts.items(), key=lambda pair: (-pair[1], pair[0]))
        return [tag for tag, _ in ranked[:limit]]


def parse_tag_input(text: str) -> list[str]:
    """Split comma-separated tag input, dropping ``#`` prefixes and duplicates."""
    tags: list[str] = []
    for part in text.split(","):
        tag = part.strip().lstrip("#").strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def format_tag(tag: str) -> str:
    return tag if tag.startswith("#") else f"#{tag}"


def filter_by_tags(items: Iterable[WorkItem], tags: Iterable[str]) -> list[WorkItem]:
    wanted = set(tags)
    if not wanted:
        return list(items)
    return [item for item in items if wanted.intersection(item.tags)]
