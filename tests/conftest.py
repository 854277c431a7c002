from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest

from canvas_suggestions.models import PDF_WIDGET_TYPE, Rect, SuggestionScope, WhitespaceZone


class FakePage:
    def __init__(self, page_number: int, text: str = "", *, fail: bool = False, raster: Any = None) -> None:
        self.page_number = page_number
        self.text = text
        self.fail = fail
        self.raster = raster
        self.extract_calls = 0

    async def extract_text(self) -> str:
        self.extract_calls += 1
        if self.fail:
            raise RuntimeError("broken text layer")
        return self.text

    async def render(self, target_width: int) -> Any:
        return self.raster


@dataclass
class FakeWidget:
    id: str
    pages: List[FakePage] = field(default_factory=list)
    zones: List[WhitespaceZone] = field(default_factory=list)
    type: str = PDF_WIDGET_TYPE
    metadata: Dict[str, Any] = field(default_factory=dict)
    page_height: float = 800.0

    def get_whitespace_zones(self) -> List[WhitespaceZone]:
        return list(self.zones)

    def set_whitespace_zones(self, zones) -> None:
        self.zones = list(zones)

    def get_page_world_rect(self, page_number: int) -> Optional[Rect]:
        if not any(page.page_number == page_number for page in self.pages):
            return None
        return Rect(0.0, 40.0 + (page_number - 1) * self.page_height, 600.0, self.page_height)

    def get_whitespace_zone_world_rect(self, zone_id: str) -> Optional[Rect]:
        zone = next((entry for entry in self.zones if entry.id == zone_id), None)
        if zone is None:
            return None
        top = 40.0 + (zone.page_number - 1) * self.page_height
        return Rect(0.0, top + zone.normalized_y * self.page_height, 600.0, zone.normalized_height * self.page_height)


class FakeRuntime:
    def __init__(self, widgets=None, scope: Optional[SuggestionScope] = None) -> None:
        self.widgets = {widget.id: widget for widget in widgets or []}
        self.scope = scope
        self.restoring = False
        self.focused: Optional[str] = None
        self.focus_calls: List[str] = []
        self.centered: List[Any] = []

    def list_widgets(self):
        return list(self.widgets.values())

    def get_widget_by_id(self, widget_id):
        return self.widgets.get(widget_id)

    def current_scope(self):
        return self.scope

    def is_restoring(self) -> bool:
        return self.restoring

    def focused_widget_id(self):
        return self.focused

    def focus_widget(self, widget_id: str) -> None:
        self.focus_calls.append(widget_id)

    def center_on_point(self, anchor) -> None:
        self.centered.append(anchor)


def make_zone(zone_id: str = "z1", *, page: int = 1, y: float = 0.2, height: float = 0.1, confidence: float = 0.9, linked=None):
    return WhitespaceZone(
        id=zone_id,
        page_number=page,
        normalized_y=y,
        normalized_height=height,
        confidence=confidence,
        linked_widget_id=linked,
    )


@pytest.fixture
def scope() -> SuggestionScope:
    return SuggestionScope(scope_id="nb::sec", section_id="sec")
