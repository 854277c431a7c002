"""Rule table matching study-material keywords in page text."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from .utils import safe_text


@dataclass(frozen=True, slots=True)
class KeywordRule:
    """Keyword looked up in page text, checked in table order."""

    keyword: str
    title: str
    tag: str


DEFAULT_KEYWORD_RULES: List[KeywordRule] = [
    KeywordRule(keyword="example", title="Example", tag="example"),
    KeywordRule(keyword="definition", title="Definition", tag="definition"),
    KeywordRule(keyword="theorem", title="Theorem", tag="theorem"),
    KeywordRule(keyword="lemma", title="Lemma", tag="lemma"),
    KeywordRule(keyword="proof", title="Proof", tag="proof"),
    KeywordRule(keyword="corollary", title="Corollary", tag="corollary"),
]


def detect_keyword(text: str, rules: Iterable[KeywordRule] | None = None) -> Optional[KeywordRule]:
    """Return the first rule whose keyword occurs in ``text``, ignoring case."""

    lowered = safe_text(text).lower()
    if not lowered:
        return None
    for rule in DEFAULT_KEYWORD_RULES if rules is None else rules:
        if rule.keyword in lowered:
            return rule
    return None


def rules_from_names(names: Iterable[str]) -> List[KeywordRule]:
    """Build a rule table from keyword names, keeping the given priority."""

    known = {rule.keyword: rule for rule in DEFAULT_KEYWORD_RULES}
    table: List[KeywordRule] = []
    for name in names:
        keyword = name.strip().lower()
        if not keyword:
            continue
        table.append(known.get(keyword) or KeywordRule(keyword=keyword, title=keyword.capitalize(), tag=keyword))
    return table
