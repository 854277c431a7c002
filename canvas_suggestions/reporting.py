"""Reporting utilities for suggestion sections."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List

from .models import SuggestionScope, Suggestion


@dataclass(slots=True)
class Report:
    title: str
    summary_lines: List[str]

    def render_text(self) -> str:
        return "\n".join([self.title, "-" * len(self.title), *self.summary_lines])


def section_report(suggestions: Iterable[Suggestion], scope: SuggestionScope) -> Report:
    title = f"Suggestions for {scope.scope_id} / {scope.section_id}"
    entries = list(suggestions)
    if not entries:
        return Report(title=title, summary_lines=["No suggestions recorded."])
    states = Counter(entry.state for entry in entries)
    kinds = Counter(entry.kind for entry in entries)
    decided = states["accepted"] + states["ghosted"] + states["dismissed"] + states["discarded"]
    lines = [f"Total suggestions: {len(entries)}"]
    if decided:
        lines.append(f"Acceptance rate: {states['accepted'] / decided:.0%}")
    for state, count in states.most_common():
        lines.append(f"- {state}: {count}")
    for kind, count in kinds.most_common():
        lines.append(f"- {kind}: {count}")
    return Report(title=title, summary_lines=lines)
