"""Data models shared by the suggestion engine, store and scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

PDF_WIDGET_TYPE = "pdf-document"
REFERENCE_POPUP_WIDGET_TYPE = "reference-popup"

KIND_EXPANDED_AREA = "expanded-area"
KIND_REFERENCE_POPUP = "reference-popup"
SUGGESTION_KINDS = frozenset({KIND_EXPANDED_AREA, KIND_REFERENCE_POPUP})

STATE_PROPOSED = "proposed"
STATE_ACCEPTED = "accepted"
STATE_DISMISSED = "dismissed"
STATE_GHOSTED = "ghosted"
STATE_RESTORED = "restored"
STATE_DISCARDED = "discarded"
SUGGESTION_STATES = frozenset(
    {
        STATE_PROPOSED,
        STATE_ACCEPTED,
        STATE_DISMISSED,
        STATE_GHOSTED,
        STATE_RESTORED,
        STATE_DISCARDED,
    }
)


@dataclass(slots=True)
class Anchor:
    """Point in the world space of the canvas."""

    x: float
    y: float


@dataclass(slots=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Anchor:
        return Anchor(self.x + self.width / 2, self.y + self.height / 2)


@dataclass(slots=True)
class WhitespaceZone:
    """Blank band detected on a document page."""

    id: str
    page_number: int
    normalized_y: float
    normalized_height: float
    confidence: float
    collapsed: bool = False
    linked_widget_id: Optional[str] = None


@dataclass(slots=True)
class SuggestionScope:
    """Workspace partition a suggestion belongs to."""

    scope_id: str
    section_id: str


@dataclass(slots=True)
class SuggestionCandidate:
    """Freshly collected proposal, not yet merged into the store."""

    id: str
    kind: str
    label: str
    fingerprint: str
    anchor: Anchor
    payload: Dict[str, Any] = field(default_factory=dict)
    document_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "documentId": self.document_id,
            "kind": self.kind,
            "label": self.label,
            "fingerprint": self.fingerprint,
            "anchor": {"x": self.anchor.x, "y": self.anchor.y},
            "payload": dict(self.payload),
        }


@dataclass(slots=True)
class Suggestion:
    """Durable suggestion record owned by the store."""

    id: str
    scope_id: str
    section_id: str
    kind: str
    label: str
    fingerprint: str
    anchor: Anchor
    created_at: str
    updated_at: str
    document_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    state: str = STATE_PROPOSED
    dismissed_at: Optional[str] = None
    restored_at: Optional[str] = None
    accepted_at: Optional[str] = None
    discarded_at: Optional[str] = None

    @property
    def source_widget_id(self) -> Optional[str]:
        value = self.payload.get("sourceWidgetId")
        if isinstance(value, str) and value.strip():
            return value
        return None

    def copy(self) -> "Suggestion":
        return Suggestion(
            id=self.id,
            scope_id=self.scope_id,
            section_id=self.section_id,
            kind=self.kind,
            label=self.label,
            fingerprint=self.fingerprint,
            anchor=Anchor(self.anchor.x, self.anchor.y),
            created_at=self.created_at,
            updated_at=self.updated_at,
            document_id=self.document_id,
            payload=dict(self.payload),
            state=self.state,
            dismissed_at=self.dismissed_at,
            restored_at=self.restored_at,
            accepted_at=self.accepted_at,
            discarded_at=self.discarded_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to the persisted record layout."""

        return {
            "id": self.id,
            "scopeId": self.scope_id,
            "sectionId": self.section_id,
            "documentId": self.document_id,
            "kind": self.kind,
            "label": self.label,
            "fingerprint": self.fingerprint,
            "anchor": {"x": self.anchor.x, "y": self.anchor.y},
            "payload": dict(self.payload),
            "state": self.state,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "dismissedAt": self.dismissed_at,
            "restoredAt": self.restored_at,
            "acceptedAt": self.accepted_at,
            "discardedAt": self.discarded_at,
        }


@dataclass(slots=True)
class PruneResult:
    removed: int
    kept: int


@dataclass(slots=True)
class RailSnapshot:
    """Suggestions shown next to the focused document widget."""

    focused_widget_id: Optional[str] = None
    proposed: List[Suggestion] = field(default_factory=list)
    ghosted: List[Suggestion] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.proposed and not self.ghosted


@runtime_checkable
class DocumentPage(Protocol):
    page_number: int

    def extract_text(self) -> Any:
        """Return the page text, or an awaitable resolving to it."""

    def render(self, target_width: int) -> Any:
        """Return a raster of the page, or an awaitable resolving to it."""


@runtime_checkable
class DocumentWidget(Protocol):
    id: str
    type: str
    metadata: Mapping[str, Any]
    pages: Sequence[DocumentPage]

    def get_whitespace_zones(self) -> List[WhitespaceZone]:
        ...

    def set_whitespace_zones(self, zones: Sequence[WhitespaceZone]) -> None:
        ...

    def get_whitespace_zone_world_rect(self, zone_id: str) -> Optional[Rect]:
        ...

    def get_page_world_rect(self, page_number: int) -> Optional[Rect]:
        ...


class WorkspaceRuntime(Protocol):
    """Canvas host the orchestrator reads from."""

    def list_widgets(self) -> Sequence[Any]:
        ...

    def get_widget_by_id(self, widget_id: str) -> Any:
        ...

    def current_scope(self) -> Optional[SuggestionScope]:
        ...

    def is_restoring(self) -> bool:
        ...

    def focused_widget_id(self) -> Optional[str]:
        ...
