"""End-to-end orchestration of suggestion analysis for a workspace."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from .actions import ActionOutcome, SuggestionActions
from .engine import SuggestionEngine
from .models import (
    KIND_REFERENCE_POPUP,
    PDF_WIDGET_TYPE,
    REFERENCE_POPUP_WIDGET_TYPE,
    STATE_ACCEPTED,
    STATE_DISCARDED,
    STATE_GHOSTED,
    STATE_PROPOSED,
    STATE_RESTORED,
    RailSnapshot,
    Suggestion,
    SuggestionScope,
    WorkspaceRuntime,
)
from .scheduling import Debouncer, RenderCoalescer, SchedulerConfig, SingleFlight
from .store import TRANSITIONS, SuggestionStore
from .utils import non_blank

logger = logging.getLogger(__name__)

RenderCallback = Callable[[RailSnapshot], None]
PersistCallback = Callable[[SuggestionScope, List[Dict[str, Any]]], None]


class SuggestionAssistant:
    """Coordinates engine, store and scheduling for one workspace runtime."""

    def __init__(
        self,
        runtime: WorkspaceRuntime,
        *,
        engine: SuggestionEngine | None = None,
        store: SuggestionStore | None = None,
        config: SchedulerConfig | None = None,
        on_render: RenderCallback | None = None,
        on_persist: PersistCallback | None = None,
        actions: SuggestionActions | None = None,
    ) -> None:
        self.runtime = runtime
        self.engine = engine or SuggestionEngine()
        self.store = store or SuggestionStore()
        self.config = config or SchedulerConfig()
        self.actions = actions or SuggestionActions()
        self.on_render = on_render
        self.on_persist = on_persist
        self._flight = SingleFlight(self._analysis_pass, name="Suggestion analysis")
        self._debouncer = Debouncer(self._on_debounce, self.config.debounce_seconds)
        self._renderer = RenderCoalescer(self._render_now, self.config.frame_interval)
        self._tasks: set[asyncio.Task] = set()

    @property
    def flight(self) -> SingleFlight:
        return self._flight

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    def current_scope(self) -> Optional[SuggestionScope]:
        scope = self.runtime.current_scope()
        if scope is None:
            return None
        if non_blank(scope.scope_id) is None or non_blank(scope.section_id) is None:
            return None
        return scope

    def _suppressed(self) -> bool:
        return self.current_scope() is None or bool(self.runtime.is_restoring())

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_analysis(self, *, immediate: bool = False) -> bool:
        """Debounce an analysis pass; immediate uses a zero delay.

        Returns False when the trigger was suppressed or no event loop is
        running to host the timer.
        """

        self._debouncer.cancel()
        if self._suppressed():
            return False
        return self._debouncer.schedule(immediate=immediate)

    async def run_analysis_now(self) -> bool:
        if self._suppressed():
            return False
        return await self._flight.run()

    def reset_scheduling(self) -> None:
        self._debouncer.cancel()
        self._flight.reset()
        self._renderer.cancel()

    def _on_debounce(self) -> None:
        task = asyncio.get_running_loop().create_task(self.run_analysis_now())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _analysis_pass(self) -> None:
        scope = self.current_scope()
        if scope is None or self.runtime.is_restoring():
            return
        try:
            generated = await self.engine.collect(self.runtime.list_widgets())
            _, pruned = self.store.apply_analysis(
                scope.scope_id, scope.section_id, generated, self.runtime.get_widget_by_id
            )
        except Exception:
            logger.exception("Suggestion analysis failed")
            return
        logger.debug(
            "Analysis for %s/%s produced %d candidates (%d pruned, %d kept)",
            scope.scope_id,
            scope.section_id,
            len(generated),
            pruned.removed,
            pruned.kept,
        )
        self.request_render()
        self._persist(scope)

    def _persist(self, scope: SuggestionScope) -> None:
        if self.on_persist is None:
            return
        try:
            self.on_persist(scope, self.store.to_persistence_payload(scope.scope_id, scope.section_id))
        except Exception:
            logger.exception("Persisting suggestions for %s/%s failed", scope.scope_id, scope.section_id)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def request_render(self, *, immediate: bool = False) -> None:
        self._renderer.request(immediate=immediate)

    def rail_snapshot(self) -> RailSnapshot:
        """Reference popups of the focused document widget, split by state."""

        scope = self.current_scope()
        if scope is None:
            return RailSnapshot()
        focused_id = self.runtime.focused_widget_id()
        focused = self.runtime.get_widget_by_id(focused_id) if focused_id else None
        if focused is None or getattr(focused, "type", None) != PDF_WIDGET_TYPE:
            return RailSnapshot()

        def for_focused(states: Iterable[str]) -> List[Suggestion]:
            return [
                entry
                for entry in self.store.list(scope.scope_id, scope.section_id, states=states)
                if entry.kind == KIND_REFERENCE_POPUP and entry.source_widget_id == focused.id
            ]

        return RailSnapshot(
            focused_widget_id=focused.id,
            proposed=for_focused([STATE_PROPOSED, STATE_RESTORED]),
            ghosted=for_focused([STATE_GHOSTED]),
        )

    def _render_now(self) -> None:
        if self.on_render is not None:
            self.on_render(self.rail_snapshot())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def transition_suggestion(self, suggestion_id: str, to_state: str) -> Optional[Suggestion]:
        scope = self.current_scope()
        if scope is None:
            return None
        updated = self.store.transition(scope.scope_id, scope.section_id, suggestion_id, to_state)
        self.request_render()
        self._persist(scope)
        return updated

    def ghost_suggestion(self, suggestion_id: str) -> Optional[Suggestion]:
        return self.transition_suggestion(suggestion_id, STATE_GHOSTED)

    def restore_suggestion(self, suggestion_id: str) -> Optional[Suggestion]:
        return self.transition_suggestion(suggestion_id, STATE_RESTORED)

    def discard_suggestion(self, suggestion_id: str) -> Optional[Suggestion]:
        return self.transition_suggestion(suggestion_id, STATE_DISCARDED)

    def restore_suggestion_for_removed_widget(self, widget: Any, reason: str) -> Optional[Suggestion]:
        """Send a deleted popup's accepted suggestion back to the ghost rail."""

        if reason != "user-delete" or getattr(widget, "type", None) != REFERENCE_POPUP_WIDGET_TYPE:
            return None
        metadata = getattr(widget, "metadata", None) or {}
        suggestion_id = non_blank(metadata.get("suggestionId"))
        scope = self.current_scope()
        if suggestion_id is None or scope is None:
            return None
        existing = self.store.get(scope.scope_id, scope.section_id, suggestion_id)
        if existing is None or existing.state != STATE_ACCEPTED:
            return None
        return self.transition_suggestion(suggestion_id, STATE_GHOSTED)

    def focus_suggestion(self, suggestion: Suggestion) -> ActionOutcome:
        return self.actions.focus(suggestion, self.runtime)

    async def accept_suggestion(self, suggestion: Suggestion) -> bool:
        """Create the suggested widget and mark the record accepted.

        Nothing is created when the stored record cannot move to accepted.
        """

        scope = self.current_scope()
        current = self.store.get(scope.scope_id, scope.section_id, suggestion.id) if scope else None
        if current is None or STATE_ACCEPTED not in TRANSITIONS.get(current.state, frozenset()):
            logger.debug("Suggestion %s cannot be accepted", suggestion.id)
            return False
        outcome = await self.actions.accept(current, self.runtime)
        if outcome.status != "executed":
            logger.debug("Accepting %s skipped: %s", suggestion.id, outcome.detail)
            return False
        if self.transition_suggestion(suggestion.id, STATE_ACCEPTED) is None:
            return False
        self.schedule_analysis(immediate=True)
        return True

    def notify_widget_removed(self, widget_id: str) -> None:
        """Drop cached text of a removed widget and debounce a pass.

        Outside a running event loop only the cache is cleared.
        """

        self.engine.clear_widget_cache(widget_id)
        self.schedule_analysis()

    def restore_section(self, scope: SuggestionScope, records: Iterable[Any]) -> List[Suggestion]:
        """Bulk import persisted records, replacing the section's suggestions."""

        return self.store.replace_section_suggestions(scope.scope_id, scope.section_id, records)
