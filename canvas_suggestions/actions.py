"""Turns accepted suggestions into widget creation requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

from .models import KIND_EXPANDED_AREA, KIND_REFERENCE_POPUP, PDF_WIDGET_TYPE, Anchor, Suggestion
from .utils import non_blank, resolve

logger = logging.getLogger(__name__)

CREATED_FROM_SUGGESTION = "suggestion-accepted"


@dataclass(slots=True)
class CreationIntent:
    type: str
    anchor: Optional[Anchor]
    source_widget_id: Optional[str]
    created_from: str = CREATED_FROM_SUGGESTION


@dataclass(slots=True)
class ReferencePopupDefinition:
    """Content of the popup created for an accepted keyword suggestion."""

    title: str
    suggestion_id: str
    source_label: str
    text_content: str
    tags: List[str] = field(default_factory=list)
    content_type: str = "definition"


@dataclass(slots=True)
class ActionOutcome:
    status: str
    detail: str = ""


class WidgetFactory(Protocol):
    """Canvas side that places and sizes the widgets; may return awaitables."""

    def create_expanded_from_zone(self, widget: Any, zone: Any) -> Any:
        ...

    def create_expanded_area(self, intent: CreationIntent) -> Any:
        ...

    def create_reference_popup(self, intent: CreationIntent, definition: ReferencePopupDefinition) -> Any:
        ...


class SuggestionActions:
    """Executes the side effects of accepting or focusing a suggestion."""

    def __init__(self, factory: WidgetFactory | None = None) -> None:
        self.factory = factory

    async def accept(self, suggestion: Suggestion, runtime: Any) -> ActionOutcome:
        if self.factory is None:
            return ActionOutcome(status="skipped", detail="no widget factory configured")
        if suggestion.kind == KIND_EXPANDED_AREA:
            return await self._accept_expanded_area(suggestion, runtime)
        if suggestion.kind == KIND_REFERENCE_POPUP:
            return await self._accept_reference_popup(suggestion)
        return ActionOutcome(status="skipped", detail=f"unsupported kind {suggestion.kind}")

    async def _accept_expanded_area(self, suggestion: Suggestion, runtime: Any) -> ActionOutcome:
        source_id = suggestion.source_widget_id
        source = runtime.get_widget_by_id(source_id) if source_id else None
        zone_id = non_blank(suggestion.payload.get("whitespaceZoneId"))
        if source is not None and getattr(source, "type", None) == PDF_WIDGET_TYPE and zone_id:
            zone = next((entry for entry in source.get_whitespace_zones() if entry.id == zone_id), None)
            if zone is not None and not zone.linked_widget_id:
                await resolve(self.factory.create_expanded_from_zone(source, zone))
                return ActionOutcome(status="executed", detail=f"expanded zone {zone_id}")
        intent = CreationIntent(
            type=KIND_EXPANDED_AREA,
            anchor=suggestion.anchor,
            source_widget_id=source.id if source is not None else source_id,
        )
        await resolve(self.factory.create_expanded_area(intent))
        return ActionOutcome(status="executed", detail="created expanded area")

    async def _accept_reference_popup(self, suggestion: Suggestion) -> ActionOutcome:
        payload = suggestion.payload
        keyword_title = non_blank(payload.get("keywordTitle")) or "Reference"
        source_title = non_blank(payload.get("sourceTitle")) or "PDF"
        snippet = non_blank(payload.get("snippetText")) or f"{keyword_title} appears in {source_title}."
        tag = payload.get("keywordTag") if isinstance(payload.get("keywordTag"), str) else "keyword"
        intent = CreationIntent(
            type=KIND_REFERENCE_POPUP,
            anchor=suggestion.anchor,
            source_widget_id=suggestion.source_widget_id,
        )
        definition = ReferencePopupDefinition(
            title=f"{keyword_title} Reference",
            suggestion_id=suggestion.id,
            source_label=source_title,
            text_content=snippet,
            tags=["suggested", tag],
        )
        await resolve(self.factory.create_reference_popup(intent, definition))
        return ActionOutcome(status="executed", detail=definition.title)

    def focus(self, suggestion: Suggestion, runtime: Any) -> ActionOutcome:
        """Bring the source widget into view, or centre on the anchor."""

        source_id = suggestion.source_widget_id
        source = runtime.get_widget_by_id(source_id) if source_id else None
        if source is not None:
            focus_widget = getattr(runtime, "focus_widget", None)
            if callable(focus_widget):
                focus_widget(source.id)
            return ActionOutcome(status="executed", detail=f"focused {source.id}")
        center_on = getattr(runtime, "center_on_point", None)
        if callable(center_on):
            center_on(suggestion.anchor)
            return ActionOutcome(status="executed", detail="centered on anchor")
        logger.debug("Runtime cannot focus suggestion %s", suggestion.id)
        return ActionOutcome(status="skipped")
