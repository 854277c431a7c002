"""Whitespace zone detection on rendered document pages."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, List

import numpy as np
from PIL import Image

from .models import WhitespaceZone
from .utils import resolve

logger = logging.getLogger(__name__)

TARGET_RENDER_WIDTH = int(os.getenv("CANVAS_SUGGESTIONS_ZONE_RENDER_WIDTH", "240"))
DARK_LUMINANCE = 238.0
MAX_DARK_RATIO = 0.018
MIN_WHITE_RUN_RATIO = 0.04
MIN_WHITE_RUN_ROWS = 8
MAX_ZONES_PER_PAGE = 4

_LUMA_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float64)


@dataclass(slots=True)
class WhitespaceRun:
    start_row: int
    row_count: int


def _to_rgb_array(image: Any, target_width: int | None) -> np.ndarray | None:
    if image is None:
        return None
    if isinstance(image, Image.Image):
        if image.width < 1 or image.height < 1:
            return None
        image = image.convert("RGB")
        if target_width and image.width > target_width:
            height = max(1, round(image.height * target_width / image.width))
            image = image.resize((target_width, height))
        return np.asarray(image, dtype=np.float64)
    array = np.asarray(image, dtype=np.float64)
    if array.ndim == 2:
        array = np.repeat(array[:, :, np.newaxis], 3, axis=2)
    if array.ndim != 3 or array.shape[2] < 3:
        logger.debug("Unsupported raster shape %s", array.shape)
        return None
    return array[:, :, :3]


def row_dark_ratios(image: Any, *, target_width: int | None = None) -> np.ndarray:
    """Fraction of dark pixels in every pixel row of the raster."""

    rgb = _to_rgb_array(image, target_width)
    if rgb is None or rgb.shape[0] == 0 or rgb.shape[1] == 0:
        return np.zeros(0, dtype=np.float64)
    luma = rgb @ _LUMA_WEIGHTS
    return (luma < DARK_LUMINANCE).mean(axis=1)


def detect_whitespace_runs(ratios: Any) -> List[WhitespaceRun]:
    """Longest runs of blank rows, at most ``MAX_ZONES_PER_PAGE`` of them."""

    ratios = np.asarray(ratios, dtype=np.float64)
    height = int(ratios.shape[0])
    min_rows = max(MIN_WHITE_RUN_ROWS, int(height * MIN_WHITE_RUN_RATIO))
    runs: List[WhitespaceRun] = []
    run_start: int | None = None
    for row, ratio in enumerate(ratios):
        blank = ratio <= MAX_DARK_RATIO
        if blank and run_start is None:
            run_start = row
        elif not blank and run_start is not None:
            if row - run_start >= min_rows:
                runs.append(WhitespaceRun(run_start, row - run_start))
            run_start = None
    if run_start is not None and height - run_start >= min_rows:
        runs.append(WhitespaceRun(run_start, height - run_start))
    runs.sort(key=lambda run: run.row_count, reverse=True)
    return runs[:MAX_ZONES_PER_PAGE]


def analyze_page_image(image: Any, page_number: int, *, target_width: int | None = None) -> List[WhitespaceZone]:
    """Detect whitespace zones on one rendered page."""

    ratios = row_dark_ratios(image, target_width=target_width)
    height = int(ratios.shape[0])
    if height == 0:
        return []
    zones: List[WhitespaceZone] = []
    for index, run in enumerate(detect_whitespace_runs(ratios)):
        zones.append(
            WhitespaceZone(
                id=f"p{page_number}-w{index + 1}",
                page_number=page_number,
                normalized_y=run.start_row / height,
                normalized_height=run.row_count / height,
                confidence=1 - min(1.0, run.row_count / height),
            )
        )
    return zones


async def analyze_widget(widget: Any, *, target_width: int = TARGET_RENDER_WIDTH) -> List[WhitespaceZone]:
    """Render every page of ``widget`` and store the detected zones on it."""

    pages = list(getattr(widget, "pages", None) or [])
    if not pages:
        return []
    zones: List[WhitespaceZone] = []
    for page in pages:
        try:
            raster = await resolve(page.render(target_width))
        except Exception as exc:  # pragma: no cover - runtime safeguard
            logger.debug("Rendering page %s of %s failed: %s", page.page_number, widget.id, exc)
            continue
        zones.extend(analyze_page_image(raster, page.page_number, target_width=target_width))
    widget.set_whitespace_zones(zones)
    logger.debug("Detected %d whitespace zones on %s", len(zones), widget.id)
    return zones
