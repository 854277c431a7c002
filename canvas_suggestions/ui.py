"""Presentation helpers for the suggestion rail."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from .models import RailSnapshot, Suggestion

MAX_ACTIVE_CARDS = 6
MAX_GHOST_CARDS = 8


def compact_label(suggestion: Suggestion, *, limit: int = 36) -> str:
    base = suggestion.label.strip() if isinstance(suggestion.label, str) else ""
    if not base:
        return "Suggestion"
    return base if len(base) <= limit else base[: limit - 3] + "..."


@dataclass(slots=True)
class SuggestionCard:
    suggestion: Suggestion
    ghost: bool = False

    def render_text(self) -> str:
        if self.ghost:
            return f"  • {compact_label(self.suggestion)}  [restore]"
        lines = [f"[{self.suggestion.kind}] {compact_label(self.suggestion)}  [✓ accept] [✕ ghost]"]
        snippet = self.suggestion.payload.get("snippetText")
        if isinstance(snippet, str) and snippet:
            lines.append(f"  {snippet}")
        return "\n".join(lines)


def build_rail(snapshot: RailSnapshot) -> List[SuggestionCard]:
    """Active cards first, then ghosts, each capped."""

    if snapshot.focused_widget_id is None:
        return []
    cards = [SuggestionCard(suggestion=entry) for entry in snapshot.proposed[:MAX_ACTIVE_CARDS]]
    cards.extend(SuggestionCard(suggestion=entry, ghost=True) for entry in snapshot.ghosted[:MAX_GHOST_CARDS])
    return cards


def render_rail(snapshot: RailSnapshot) -> str:
    cards = build_rail(snapshot)
    if not cards:
        return "suggestions: (none)"
    return "\n".join(card.render_text() for card in cards)
