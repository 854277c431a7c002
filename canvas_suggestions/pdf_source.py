"""PyMuPDF-backed document widget used outside the canvas host."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import fitz  # PyMuPDF
from PIL import Image

from .models import PDF_WIDGET_TYPE, Rect, WhitespaceZone
from .utils import generate_id

logger = logging.getLogger(__name__)

HEADER_HEIGHT = 40.0
PAGE_GAP = 16.0


class PdfPage:
    """One page of an open PDF; text and rasters are produced off the loop."""

    def __init__(self, document: "fitz.Document", index: int, *, base_world_y: float, world_height: float) -> None:
        self._document = document
        self.index = index
        self.page_number = index + 1
        self.base_world_y = base_world_y
        self.world_height = world_height

    def _text(self) -> str:
        return self._document[self.index].get_text("text")

    def _raster(self, target_width: int) -> Image.Image:
        page = self._document[self.index]
        scale = target_width / max(1.0, page.rect.width)
        pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        return Image.frombytes("RGB", (pix.width, pix.height), pix.samples)

    async def extract_text(self) -> str:
        return await asyncio.to_thread(self._text)

    async def render(self, target_width: int) -> Image.Image:
        return await asyncio.to_thread(self._raster, target_width)


@dataclass(slots=True)
class PdfDocumentWidget:
    """PDF widget laid out as a column of pages below a header strip."""

    id: str
    path: Path
    document: Any
    x: float = 0.0
    y: float = 0.0
    width: float = 640.0
    type: str = PDF_WIDGET_TYPE
    metadata: Dict[str, Any] = field(default_factory=dict)
    pages: List[PdfPage] = field(default_factory=list)
    zones: List[WhitespaceZone] = field(default_factory=list)

    def get_whitespace_zones(self) -> List[WhitespaceZone]:
        return list(self.zones)

    def set_whitespace_zones(self, zones: Sequence[WhitespaceZone]) -> None:
        self.zones = list(zones)

    def get_page_world_rect(self, page_number: int) -> Optional[Rect]:
        page = next((entry for entry in self.pages if entry.page_number == page_number), None)
        if page is None:
            return None
        return Rect(self.x, self.y + HEADER_HEIGHT + page.base_world_y, self.width, page.world_height)

    def get_whitespace_zone_world_rect(self, zone_id: str) -> Optional[Rect]:
        zone = next((entry for entry in self.zones if entry.id == zone_id), None)
        if zone is None:
            return None
        page_rect = self.get_page_world_rect(zone.page_number)
        if page_rect is None:
            return None
        return Rect(
            page_rect.x,
            page_rect.y + zone.normalized_y * page_rect.height,
            page_rect.width,
            zone.normalized_height * page_rect.height,
        )

    def link_zone(self, zone_id: str, widget_id: str) -> Optional[WhitespaceZone]:
        for zone in self.zones:
            if zone.id == zone_id:
                zone.linked_widget_id = widget_id
                return zone
        return None

    def close(self) -> None:
        self.document.close()


def open_pdf_widget(
    path: str | Path,
    *,
    widget_id: str | None = None,
    x: float = 0.0,
    y: float = 0.0,
    width: float = 640.0,
    document_id: str | None = None,
) -> PdfDocumentWidget:
    """Open ``path`` with PyMuPDF and lay its pages out in world space."""

    pdf_path = Path(path)
    document = fitz.open(str(pdf_path))
    pages: List[PdfPage] = []
    cursor = 0.0
    for index in range(len(document)):
        rect = document[index].rect
        world_height = rect.height * width / max(1.0, rect.width)
        pages.append(PdfPage(document, index, base_world_y=cursor, world_height=world_height))
        cursor += world_height + PAGE_GAP
    title = (document.metadata or {}).get("title") or pdf_path.stem
    logger.info("Opened %s (%d pages)", pdf_path, len(pages))
    return PdfDocumentWidget(
        id=widget_id or generate_id("pdf"),
        path=pdf_path,
        document=document,
        x=x,
        y=y,
        width=width,
        metadata={"title": title, "documentId": document_id},
        pages=pages,
    )
