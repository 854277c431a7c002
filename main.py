"""Analyse PDF documents and print the suggestion rail for each of them."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional

from canvas_suggestions.engine import EngineConfig, SuggestionEngine
from canvas_suggestions.models import RailSnapshot, SuggestionScope
from canvas_suggestions.pdf_source import PdfDocumentWidget, open_pdf_widget
from canvas_suggestions.persistence import SnapshotStore
from canvas_suggestions.pipeline import SuggestionAssistant
from canvas_suggestions.reporting import section_report
from canvas_suggestions.scheduling import SchedulerConfig
from canvas_suggestions.ui import render_rail
from canvas_suggestions.whitespace import analyze_widget

logger = logging.getLogger(__name__)

WIDGET_SPACING = 64.0


class LocalWorkspace:
    """Minimal canvas host holding PDF widgets side by side."""

    def __init__(self, scope: SuggestionScope) -> None:
        self.scope = scope
        self.widgets: Dict[str, PdfDocumentWidget] = {}
        self.focused_id: Optional[str] = None
        self.restoring = False

    def list_widgets(self) -> List[PdfDocumentWidget]:
        return list(self.widgets.values())

    def get_widget_by_id(self, widget_id: str) -> Optional[PdfDocumentWidget]:
        return self.widgets.get(widget_id)

    def current_scope(self) -> SuggestionScope:
        return self.scope

    def is_restoring(self) -> bool:
        return self.restoring

    def focused_widget_id(self) -> Optional[str]:
        return self.focused_id

    def focus_widget(self, widget_id: str) -> None:
        self.focused_id = widget_id

    def next_x(self) -> float:
        return sum(widget.width + WIDGET_SPACING for widget in self.widgets.values())


def print_rail(snapshot: RailSnapshot) -> None:
    if snapshot.focused_widget_id is None:
        return
    print(f"[{snapshot.focused_widget_id}]")
    for line in render_rail(snapshot).splitlines():
        print(f"  {line}")
    print()


async def load_document(path: Path, *, widget_id: str | None = None, x: float = 0.0) -> PdfDocumentWidget:
    widget = open_pdf_widget(path, widget_id=widget_id, x=x)
    await analyze_widget(widget)
    return widget


async def open_document(workspace: LocalWorkspace, path: Path, *, widget_id: str | None = None) -> PdfDocumentWidget:
    widget = await load_document(path, widget_id=widget_id, x=workspace.next_x())
    workspace.widgets[widget.id] = widget
    return widget


async def reload_document(
    workspace: LocalWorkspace,
    assistant: SuggestionAssistant,
    widget: PdfDocumentWidget,
    *,
    loader: Callable[..., Awaitable[PdfDocumentWidget]] = load_document,
) -> PdfDocumentWidget:
    """Swap a changed document for a freshly analysed one under the same id.

    The old widget stays registered and open until no analysis pass is
    running, so pruning never sees its suggestions without a source.
    """

    workspace.restoring = True
    try:
        replacement = await loader(widget.path, widget_id=widget.id, x=widget.x)
        await assistant.flight.wait_idle()
        workspace.widgets[widget.id] = replacement
        assistant.engine.clear_widget_cache(widget.id)
    finally:
        workspace.restoring = False
    widget.close()
    assistant.schedule_analysis()
    return replacement


async def run(args: argparse.Namespace) -> None:
    scope = SuggestionScope(scope_id=args.scope, section_id=args.section)
    workspace = LocalWorkspace(scope)
    snapshots = SnapshotStore(args.db)
    assistant = SuggestionAssistant(
        workspace,
        engine=SuggestionEngine(EngineConfig.from_env()),
        config=SchedulerConfig.from_env(),
        on_render=print_rail,
        on_persist=lambda target, records: snapshots.save_section(target.scope_id, target.section_id, records),
    )
    try:
        workspace.restoring = True
        restored = assistant.restore_section(scope, snapshots.load_section(scope.scope_id, scope.section_id))
        logger.info("Restored %d stored suggestions", len(restored))
        for raw_path in args.pdfs:
            path = Path(raw_path)
            await open_document(workspace, path, widget_id=path.stem)
        workspace.restoring = False

        await assistant.run_analysis_now()
        for widget_id in workspace.widgets:
            workspace.focus_widget(widget_id)
            assistant.request_render(immediate=True)
        print(section_report(assistant.store.list(scope.scope_id, scope.section_id), scope).render_text())

        if args.watch:
            await watch_loop(workspace, assistant, interval=args.interval)
    finally:
        assistant.reset_scheduling()
        for widget in workspace.list_widgets():
            widget.close()
        snapshots.close()


async def watch_loop(workspace: LocalWorkspace, assistant: SuggestionAssistant, *, interval: float) -> None:
    mtimes = {widget.id: widget.path.stat().st_mtime for widget in workspace.list_widgets()}
    try:
        while True:
            await asyncio.sleep(interval)
            for widget in workspace.list_widgets():
                if not widget.path.exists():
                    logger.info("%s was removed", widget.path)
                    workspace.widgets.pop(widget.id).close()
                    mtimes.pop(widget.id, None)
                    assistant.notify_widget_removed(widget.id)
                    continue
                mtime = widget.path.stat().st_mtime
                if mtime == mtimes.get(widget.id):
                    continue
                mtimes[widget.id] = mtime
                logger.info("%s changed, re-analysing", widget.path)
                await reload_document(workspace, assistant, widget)
                workspace.focus_widget(widget.id)
    except asyncio.CancelledError:
        print("\nStopped watching.")
        raise


def main() -> None:
    parser = argparse.ArgumentParser(description="Canvas suggestion analyser")
    parser.add_argument("pdfs", nargs="+", help="PDF files to open as document widgets")
    parser.add_argument("--scope", default="local", help="Workspace scope identifier")
    parser.add_argument("--section", default="main", help="Section identifier inside the scope")
    parser.add_argument("--db", default="suggestions.db", help="SQLite file holding suggestion snapshots")
    parser.add_argument("--watch", action="store_true", help="Keep running and re-analyse changed files")
    parser.add_argument("--interval", type=float, default=2.0, help="Polling interval in seconds for --watch")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    args.interval = max(0.1, args.interval)
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nStopped.")


if __name__ == "__main__":
    main()
