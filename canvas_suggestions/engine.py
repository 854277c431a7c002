"""Suggestion engine collecting candidates from open document widgets."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional

from .keywords import DEFAULT_KEYWORD_RULES, KeywordRule, detect_keyword, rules_from_names
from .models import (
    KIND_EXPANDED_AREA,
    KIND_REFERENCE_POPUP,
    PDF_WIDGET_TYPE,
    Anchor,
    SuggestionCandidate,
)
from .text_cache import PageTextCache
from .utils import clean_excerpt, finite_number, generate_id, non_blank, resolve, safe_text

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass(slots=True)
class EngineConfig:
    """Caps and thresholds applied while collecting candidates."""

    max_total_suggestions: int = 16
    max_keyword_suggestions_per_widget: int = 4
    max_keyword_pages_per_widget: int = 10
    min_zone_confidence: float = 0.35
    min_zone_height: float = 0.045
    min_page_text_length: int = 3
    excerpt_length: int = 180
    keyword_rules: List[KeywordRule] = field(default_factory=lambda: list(DEFAULT_KEYWORD_RULES))

    @classmethod
    def from_env(cls) -> "EngineConfig":
        config = cls(
            max_total_suggestions=_env_int("CANVAS_SUGGESTIONS_MAX_TOTAL", 16),
            max_keyword_suggestions_per_widget=_env_int("CANVAS_SUGGESTIONS_MAX_KEYWORDS_PER_WIDGET", 4),
            max_keyword_pages_per_widget=_env_int("CANVAS_SUGGESTIONS_MAX_KEYWORD_PAGES", 10),
            min_zone_confidence=_env_float("CANVAS_SUGGESTIONS_MIN_ZONE_CONFIDENCE", 0.35),
            min_zone_height=_env_float("CANVAS_SUGGESTIONS_MIN_ZONE_HEIGHT", 0.045),
            excerpt_length=_env_int("CANVAS_SUGGESTIONS_EXCERPT_LENGTH", 180),
        )
        keywords = os.getenv("CANVAS_SUGGESTIONS_KEYWORDS")
        if keywords:
            config.keyword_rules = rules_from_names(keywords.split(","))
        if config.max_total_suggestions < 0 or config.max_keyword_suggestions_per_widget < 0:
            raise ValueError("suggestion caps must not be negative")
        return config


class SuggestionEngine:
    """Turns whitespace zones and keyword hits into suggestion candidates."""

    def __init__(self, config: EngineConfig | None = None, cache: PageTextCache | None = None) -> None:
        self.config = config or EngineConfig()
        self.cache = cache or PageTextCache()

    async def collect(self, widgets: Iterable[Any]) -> List[SuggestionCandidate]:
        """Collect at most ``max_total_suggestions`` candidates; never raises."""

        live = [widget for widget in widgets or [] if widget is not None]
        self.cache.prune(
            widget_id for widget_id in (getattr(widget, "id", None) for widget in live) if non_blank(widget_id)
        )
        limit = self.config.max_total_suggestions
        collected: List[SuggestionCandidate] = []
        for widget in live:
            if getattr(widget, "type", None) != PDF_WIDGET_TYPE:
                continue
            collected.extend(self._whitespace_candidates(widget))
            if len(collected) >= limit:
                break
            collected.extend(await self._keyword_candidates(widget))
            if len(collected) >= limit:
                break
        return collected[:limit]

    def clear_widget_cache(self, widget_id: str) -> None:
        self.cache.clear_widget(widget_id)

    def reset(self) -> None:
        self.cache.reset()

    # ------------------------------------------------------------------
    # Whitespace pass
    # ------------------------------------------------------------------

    def _whitespace_candidates(self, widget: Any) -> List[SuggestionCandidate]:
        candidates: List[SuggestionCandidate] = []
        try:
            zones = list(widget.get_whitespace_zones() or [])
        except Exception as exc:  # pragma: no cover - runtime safeguard
            logger.warning("Reading whitespace zones of %s failed: %s", widget.id, exc)
            return candidates
        try:
            for zone in zones:
                if zone is None or zone.linked_widget_id:
                    continue
                height = finite_number(zone.normalized_height)
                if height is None or height < self.config.min_zone_height:
                    continue
                confidence = finite_number(zone.confidence)
                if confidence is not None and confidence < self.config.min_zone_confidence:
                    continue
                rect = widget.get_whitespace_zone_world_rect(zone.id)
                if rect is None:
                    continue
                candidates.append(
                    SuggestionCandidate(
                        id=generate_id("sgg"),
                        kind=KIND_EXPANDED_AREA,
                        label=f"Expand whitespace (p{zone.page_number})",
                        fingerprint=f"zone:{widget.id}:{zone.id}",
                        anchor=rect.center,
                        payload={
                            "sourceWidgetId": widget.id,
                            "whitespaceZoneId": zone.id,
                            "pageNumber": zone.page_number,
                            "confidence": confidence,
                        },
                        document_id=self._document_id(widget),
                    )
                )
        except Exception as exc:  # pragma: no cover - runtime safeguard
            logger.warning("Whitespace pass for %s stopped early: %s", widget.id, exc)
        return candidates

    # ------------------------------------------------------------------
    # Keyword pass
    # ------------------------------------------------------------------

    async def _keyword_candidates(self, widget: Any) -> List[SuggestionCandidate]:
        candidates: List[SuggestionCandidate] = []
        try:
            pages = list(getattr(widget, "pages", None) or [])
            for page in pages[: self.config.max_keyword_pages_per_widget]:
                if len(candidates) >= self.config.max_keyword_suggestions_per_widget:
                    break
                if page is None:
                    continue
                text = await self._page_text(widget, page)
                if len(text.strip()) < self.config.min_page_text_length:
                    continue
                rule = detect_keyword(text, self.config.keyword_rules)
                if rule is None:
                    continue
                rect = widget.get_page_world_rect(page.page_number)
                if rect is None:
                    continue
                candidates.append(
                    SuggestionCandidate(
                        id=generate_id("sgg"),
                        kind=KIND_REFERENCE_POPUP,
                        label=f"{rule.title} snippet (p{page.page_number})",
                        fingerprint=f"keyword:{widget.id}:{page.page_number}:{rule.keyword}",
                        anchor=Anchor(
                            x=rect.x + rect.width * 0.84,
                            y=rect.y + min(max(26.0, rect.height * 0.28), 128.0),
                        ),
                        payload={
                            "sourceWidgetId": widget.id,
                            "pageNumber": page.page_number,
                            "keyword": rule.keyword,
                            "keywordTitle": rule.title,
                            "keywordTag": rule.tag,
                            "snippetText": clean_excerpt(text, self.config.excerpt_length),
                            "sourceTitle": non_blank(self._metadata(widget).get("title")) or "PDF",
                        },
                        document_id=self._document_id(widget),
                    )
                )
        except Exception as exc:  # pragma: no cover - runtime safeguard
            logger.warning("Keyword pass for %s stopped early: %s", getattr(widget, "id", "?"), exc)
        return candidates

    async def _page_text(self, widget: Any, page: Any) -> str:
        cached = self.cache.get(widget.id, page.page_number)
        if cached is not None:
            return cached
        try:
            text = safe_text(await resolve(page.extract_text()))
        except Exception as exc:
            logger.debug("Text extraction failed for %s page %s: %s", widget.id, page.page_number, exc)
            text = ""
        self.cache.put(widget.id, page.page_number, text)
        return text

    @staticmethod
    def _metadata(widget: Any) -> Mapping[str, Any]:
        metadata = getattr(widget, "metadata", None)
        return metadata if isinstance(metadata, Mapping) else {}

    def _document_id(self, widget: Any) -> Optional[str]:
        return non_blank(self._metadata(widget).get("documentId"))
