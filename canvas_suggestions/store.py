"""Scoped suggestion records with merge and lifecycle rules."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .models import (
    STATE_ACCEPTED,
    STATE_DISCARDED,
    STATE_DISMISSED,
    STATE_GHOSTED,
    STATE_PROPOSED,
    STATE_RESTORED,
    SUGGESTION_KINDS,
    SUGGESTION_STATES,
    Anchor,
    PruneResult,
    Suggestion,
)
from .utils import finite_number, generate_id, non_blank, now_iso

logger = logging.getLogger(__name__)

ScopeKey = Tuple[str, str]
WidgetLookup = Callable[[str], Any]

# States a fresh analysis pass must never overwrite.
PRESERVED_STATES = frozenset({STATE_GHOSTED, STATE_DISMISSED, STATE_ACCEPTED, STATE_DISCARDED})

_STATE_RANK = {
    STATE_PROPOSED: 0,
    STATE_RESTORED: 1,
    STATE_GHOSTED: 2,
    STATE_ACCEPTED: 3,
    STATE_DISCARDED: 4,
}

TRANSITIONS: Dict[str, frozenset] = {
    STATE_PROPOSED: frozenset({STATE_ACCEPTED, STATE_GHOSTED, STATE_DISMISSED}),
    STATE_GHOSTED: frozenset({STATE_RESTORED, STATE_DISCARDED}),
    STATE_DISMISSED: frozenset({STATE_RESTORED, STATE_DISCARDED}),
    STATE_RESTORED: frozenset({STATE_ACCEPTED, STATE_GHOSTED, STATE_DISMISSED}),
    STATE_ACCEPTED: SUGGESTION_STATES - {STATE_ACCEPTED},
    STATE_DISCARDED: SUGGESTION_STATES - {STATE_DISCARDED},
}

_TIMESTAMP_FIELDS = {
    STATE_GHOSTED: "dismissed_at",
    STATE_DISMISSED: "dismissed_at",
    STATE_RESTORED: "restored_at",
    STATE_ACCEPTED: "accepted_at",
    STATE_DISCARDED: "discarded_at",
}


def _scope_key(scope_id: Any, section_id: Any) -> Optional[ScopeKey]:
    scope = non_blank(scope_id)
    section = non_blank(section_id)
    if scope is None or section is None:
        return None
    return scope, section


def _normalize_state(value: Any) -> str:
    return value if value in SUGGESTION_STATES else STATE_PROPOSED


def _normalize_anchor(value: Any) -> Optional[Anchor]:
    if isinstance(value, Anchor):
        x, y = value.x, value.y
    elif isinstance(value, Mapping):
        x, y = value.get("x"), value.get("y")
    else:
        return None
    x, y = finite_number(x), finite_number(y)
    if x is None or y is None:
        return None
    return Anchor(x, y)


def _timestamp(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _sort_key(entry: Suggestion) -> Tuple[int, str]:
    return _STATE_RANK.get(entry.state, 5), entry.created_at


def sanitize_suggestion(candidate: Any, scope_id: str, section_id: str) -> Optional[Suggestion]:
    """Build a store record from a candidate, or None when it is malformed."""

    if hasattr(candidate, "to_dict"):
        candidate = candidate.to_dict()
    if not isinstance(candidate, Mapping):
        return None

    kind = candidate.get("kind")
    if kind not in SUGGESTION_KINDS:
        logger.debug("Dropping suggestion with unknown kind %r", kind)
        return None
    anchor = _normalize_anchor(candidate.get("anchor"))
    if anchor is None:
        logger.debug("Dropping %s suggestion with invalid anchor", kind)
        return None
    payload = candidate.get("payload")
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        return None
    if "sourceWidgetId" in payload and payload["sourceWidgetId"] is not None and non_blank(payload["sourceWidgetId"]) is None:
        return None

    now = now_iso()
    return Suggestion(
        id=non_blank(candidate.get("id")) or generate_id("sgg"),
        scope_id=scope_id,
        section_id=section_id,
        document_id=non_blank(candidate.get("documentId")),
        kind=kind,
        label=non_blank(candidate.get("label")) or "Suggestion",
        fingerprint=non_blank(candidate.get("fingerprint")) or f"{kind}:{anchor.x:.2f}:{anchor.y:.2f}",
        anchor=anchor,
        payload=dict(payload),
        state=_normalize_state(candidate.get("state")),
        created_at=_timestamp(candidate.get("createdAt")) or now,
        updated_at=_timestamp(candidate.get("updatedAt")) or now,
        dismissed_at=_timestamp(candidate.get("dismissedAt")),
        restored_at=_timestamp(candidate.get("restoredAt")),
        accepted_at=_timestamp(candidate.get("acceptedAt")),
        discarded_at=_timestamp(candidate.get("discardedAt")),
    )


class SuggestionStore:
    """Owns every suggestion record, partitioned by ``(scope_id, section_id)``."""

    def __init__(self) -> None:
        self._entries: Dict[ScopeKey, List[Suggestion]] = {}

    def _read(self, key: ScopeKey) -> List[Suggestion]:
        return self._entries.get(key, [])

    def _write(self, key: ScopeKey, entries: List[Suggestion]) -> None:
        self._entries[key] = sorted(entries, key=_sort_key)

    def _sanitize_all(self, key: ScopeKey, candidates: Iterable[Any]) -> List[Suggestion]:
        normalized = []
        for candidate in candidates or []:
            entry = sanitize_suggestion(candidate, *key)
            if entry is not None:
                normalized.append(entry)
        return normalized

    def scopes(self) -> List[ScopeKey]:
        return list(self._entries)

    def list(self, scope_id: Any, section_id: Any, states: Optional[Iterable[str]] = None) -> List[Suggestion]:
        """Copies of the partition, optionally restricted to ``states``."""

        key = _scope_key(scope_id, section_id)
        if key is None:
            return []
        state_set = {_normalize_state(state) for state in states} if states else None
        return [
            entry.copy()
            for entry in self._read(key)
            if state_set is None or entry.state in state_set
        ]

    def get(self, scope_id: Any, section_id: Any, suggestion_id: str) -> Optional[Suggestion]:
        key = _scope_key(scope_id, section_id)
        if key is None:
            return None
        for entry in self._read(key):
            if entry.id == suggestion_id:
                return entry.copy()
        return None

    def counts(self, scope_id: Any, section_id: Any) -> Dict[str, int]:
        key = _scope_key(scope_id, section_id)
        if key is None:
            return {}
        return dict(Counter(entry.state for entry in self._read(key)))

    def upsert_many(self, scope_id: Any, section_id: Any, candidates: Iterable[Any]) -> List[Suggestion]:
        """Merge candidates without undoing decisions the user already made."""

        key = _scope_key(scope_id, section_id)
        if key is None:
            return []
        existing = list(self._read(key))
        for incoming in self._sanitize_all(key, candidates):
            target = next((i for i, entry in enumerate(existing) if entry.id == incoming.id), None)
            if target is None:
                target = next(
                    (i for i, entry in enumerate(existing) if entry.fingerprint == incoming.fingerprint),
                    None,
                )
            if target is None:
                existing.append(incoming)
                continue
            current = existing[target]
            merged = incoming.copy()
            merged.id = current.id
            merged.created_at = current.created_at
            merged.updated_at = now_iso()
            merged.dismissed_at = current.dismissed_at
            merged.restored_at = current.restored_at
            merged.accepted_at = current.accepted_at
            merged.discarded_at = current.discarded_at
            if current.state in PRESERVED_STATES:
                merged.state = current.state
            # fingerprint stays unique within the partition
            if any(i != target and entry.fingerprint == merged.fingerprint for i, entry in enumerate(existing)):
                merged.fingerprint = current.fingerprint
            existing[target] = merged
        self._write(key, existing)
        return [entry.copy() for entry in self._read(key)]

    def replace_section_suggestions(self, scope_id: Any, section_id: Any, candidates: Iterable[Any]) -> List[Suggestion]:
        """Reset a partition to ``candidates``; the first of any duplicate wins."""

        key = _scope_key(scope_id, section_id)
        if key is None:
            return []
        deduped: List[Suggestion] = []
        seen_ids: set[str] = set()
        seen_fingerprints: set[str] = set()
        for entry in self._sanitize_all(key, candidates):
            if entry.id in seen_ids or entry.fingerprint in seen_fingerprints:
                continue
            seen_ids.add(entry.id)
            seen_fingerprints.add(entry.fingerprint)
            deduped.append(entry)
        self._write(key, deduped)
        return [entry.copy() for entry in deduped]

    def transition(self, scope_id: Any, section_id: Any, suggestion_id: Any, to_state: Any) -> Optional[Suggestion]:
        """Move one record to ``to_state`` and stamp the matching timestamp."""

        key = _scope_key(scope_id, section_id)
        suggestion_id = non_blank(suggestion_id)
        if key is None or suggestion_id is None:
            return None
        if to_state not in SUGGESTION_STATES:
            logger.debug("Ignoring transition to unknown state %r", to_state)
            return None
        existing = list(self._read(key))
        index = next((i for i, entry in enumerate(existing) if entry.id == suggestion_id), None)
        if index is None:
            return None
        current = existing[index]
        if to_state not in TRANSITIONS.get(current.state, frozenset()):
            logger.debug("Transition %s -> %s is not allowed for %s", current.state, to_state, suggestion_id)
            return None

        now = now_iso()
        updated = current.copy()
        updated.state = to_state
        updated.updated_at = now
        timestamp_field = _TIMESTAMP_FIELDS.get(to_state)
        if timestamp_field:
            setattr(updated, timestamp_field, now)
        existing[index] = updated
        self._write(key, existing)
        return updated.copy()

    def prune_invalid_anchors(
        self,
        scope_id: Any,
        section_id: Any,
        widget_lookup: Optional[WidgetLookup] = None,
    ) -> PruneResult:
        """Drop records with a broken anchor or a source widget that is gone."""

        key = _scope_key(scope_id, section_id)
        if key is None:
            return PruneResult(removed=0, kept=0)
        kept: List[Suggestion] = []
        removed = 0
        for entry in self._read(key):
            if _normalize_anchor(entry.anchor) is None:
                removed += 1
                continue
            source = entry.source_widget_id
            if source and widget_lookup is not None and not widget_lookup(source):
                removed += 1
                continue
            kept.append(entry)
        self._write(key, kept)
        if removed:
            logger.debug("Pruned %d suggestions from %s/%s", removed, *key)
        return PruneResult(removed=removed, kept=len(kept))

    def apply_analysis(
        self,
        scope_id: Any,
        section_id: Any,
        candidates: Iterable[Any],
        widget_lookup: Optional[WidgetLookup] = None,
    ) -> Tuple[List[Suggestion], PruneResult]:
        """Merge then prune as one step; on error the partition is left as it was."""

        key = _scope_key(scope_id, section_id)
        if key is None:
            return [], PruneResult(removed=0, kept=0)
        # records are replaced, never mutated, so the old list is a full snapshot
        previous = self._entries.get(key)
        try:
            merged = self.upsert_many(scope_id, section_id, candidates)
            pruned = self.prune_invalid_anchors(scope_id, section_id, widget_lookup)
        except Exception:
            if previous is None:
                self._entries.pop(key, None)
            else:
                self._entries[key] = previous
            raise
        return merged, pruned

    def to_persistence_payload(self, scope_id: Any, section_id: Any) -> List[Dict[str, Any]]:
        key = _scope_key(scope_id, section_id)
        if key is None:
            return []
        return [entry.to_dict() for entry in self._read(key)]

    def clear(self, scope_id: Any, section_id: Any) -> None:
        key = _scope_key(scope_id, section_id)
        if key is not None:
            self._entries.pop(key, None)
