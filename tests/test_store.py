import pytest

from canvas_suggestions.models import Anchor, Suggestion, SuggestionCandidate
from canvas_suggestions.store import SuggestionStore

SCOPE = "nb::sec"
SECTION = "sec"


def sample(**overrides):
    entry = {
        "id": "s-1",
        "kind": "expanded-area",
        "label": "Expand whitespace",
        "fingerprint": "zone:pdf-1:z-1",
        "anchor": {"x": 20, "y": 40},
        "payload": {"sourceWidgetId": "pdf-1", "whitespaceZoneId": "z-1"},
    }
    entry.update(overrides)
    return entry


@pytest.fixture
def store():
    return SuggestionStore()


def test_upsert_preserves_ghosted_and_accepted_states(store):
    store.upsert_many(SCOPE, SECTION, [sample()])
    assert len(store.list(SCOPE, SECTION)) == 1

    store.transition(SCOPE, SECTION, "s-1", "ghosted")
    store.upsert_many(SCOPE, SECTION, [sample(id="s-new", label="Expand whitespace updated")])
    after_ghost = store.list(SCOPE, SECTION)
    assert len(after_ghost) == 1
    assert after_ghost[0].id == "s-1"
    assert after_ghost[0].state == "ghosted"
    assert after_ghost[0].label == "Expand whitespace updated"

    store.transition(SCOPE, SECTION, "s-1", "restored")
    store.transition(SCOPE, SECTION, "s-1", "accepted")
    store.upsert_many(SCOPE, SECTION, [sample(id="s-new-2")])
    assert store.list(SCOPE, SECTION)[0].state == "accepted"


@pytest.mark.parametrize("state_path", [["ghosted"], ["dismissed"], ["accepted"], ["ghosted", "discarded"]])
def test_decided_states_survive_reanalysis(store, state_path):
    store.upsert_many(SCOPE, SECTION, [sample()])
    for state in state_path:
        assert store.transition(SCOPE, SECTION, "s-1", state) is not None
    before = store.get(SCOPE, SECTION, "s-1")
    store.upsert_many(SCOPE, SECTION, [sample(id=None, anchor={"x": 99, "y": 1})])
    after = store.get(SCOPE, SECTION, "s-1")
    assert after.state == state_path[-1]
    assert after.anchor == Anchor(99.0, 1.0)
    assert after.created_at == before.created_at
    assert after.dismissed_at == before.dismissed_at
    assert after.accepted_at == before.accepted_at


def test_ghost_then_resubmit_keeps_ghost_and_dismissed_at(store):
    candidate = {"kind": "expanded-area", "fingerprint": "zone:w1:z1", "anchor": {"x": 10, "y": 20}}
    [created] = store.upsert_many(SCOPE, SECTION, [candidate])
    assert created.state == "proposed"
    store.transition(SCOPE, SECTION, created.id, "ghosted")
    [stored] = store.upsert_many(SCOPE, SECTION, [candidate])
    assert stored.state == "ghosted"
    assert stored.dismissed_at is not None


def test_proposed_record_is_refreshed_in_place(store):
    store.upsert_many(SCOPE, SECTION, [sample()])
    store.upsert_many(SCOPE, SECTION, [sample(id="other", label="New label")])
    [entry] = store.list(SCOPE, SECTION)
    assert entry.id == "s-1"
    assert entry.label == "New label"
    assert entry.state == "proposed"


def test_fingerprints_stay_unique_after_upsert(store):
    batch = [
        sample(id="a", fingerprint="f1"),
        sample(id="b", fingerprint="f1"),
        sample(id="c", fingerprint="f2"),
    ]
    store.upsert_many(SCOPE, SECTION, batch)
    store.upsert_many(SCOPE, SECTION, [sample(id="c", fingerprint="f1")])
    fingerprints = [entry.fingerprint for entry in store.list(SCOPE, SECTION)]
    assert sorted(fingerprints) == ["f1", "f2"]


def test_sanitisation_drops_malformed_candidates(store):
    stored = store.upsert_many(
        SCOPE,
        SECTION,
        [
            sample(id="bad-kind", kind="diagram", fingerprint="k"),
            sample(id="nan", anchor={"x": float("nan"), "y": 1}, fingerprint="n"),
            sample(id="inf", anchor={"x": 1, "y": float("inf")}, fingerprint="i"),
            sample(id="str", anchor={"x": "a", "y": 1}, fingerprint="s"),
            sample(id="payload", payload=["not", "a", "mapping"], fingerprint="p"),
            sample(id="source", payload={"sourceWidgetId": "  "}, fingerprint="w"),
            "not even a mapping",
            sample(id="ok", fingerprint="ok"),
        ],
    )
    assert [entry.id for entry in stored] == ["ok"]


def test_defaults_for_label_fingerprint_and_id(store):
    [entry] = store.upsert_many(
        SCOPE, SECTION, [{"kind": "reference-popup", "anchor": {"x": 1.234, "y": 5}, "state": "weird"}]
    )
    assert entry.label == "Suggestion"
    assert entry.fingerprint == "reference-popup:1.23:5.00"
    assert entry.id
    assert entry.state == "proposed"


def test_candidate_dataclasses_are_accepted(store):
    candidate = SuggestionCandidate(
        id="c1",
        kind="reference-popup",
        label="Example snippet (p1)",
        fingerprint="keyword:w1:1:example",
        anchor=Anchor(1, 2),
        payload={"sourceWidgetId": "w1"},
        document_id="doc",
    )
    [entry] = store.upsert_many(SCOPE, SECTION, [candidate])
    assert entry.document_id == "doc"
    assert entry.scope_id == SCOPE
    assert entry.section_id == SECTION


def test_list_orders_by_state_priority_then_creation(store):
    store.replace_section_suggestions(
        SCOPE,
        SECTION,
        [
            sample(id="acc", fingerprint="1", state="accepted", createdAt="2024-01-01T00:00:00.000+00:00"),
            sample(id="gh2", fingerprint="2", state="ghosted", createdAt="2024-01-03T00:00:00.000+00:00"),
            sample(id="gh1", fingerprint="3", state="ghosted", createdAt="2024-01-02T00:00:00.000+00:00"),
            sample(id="dis", fingerprint="4", state="discarded", createdAt="2024-01-01T00:00:00.000+00:00"),
            sample(id="res", fingerprint="5", state="restored", createdAt="2024-01-09T00:00:00.000+00:00"),
            sample(id="pro", fingerprint="6", state="proposed", createdAt="2024-01-10T00:00:00.000+00:00"),
        ],
    )
    assert [entry.id for entry in store.list(SCOPE, SECTION)] == ["pro", "res", "gh1", "gh2", "acc", "dis"]
    assert [entry.id for entry in store.list(SCOPE, SECTION, states=["ghosted"])] == ["gh1", "gh2"]


def test_list_returns_defensive_copies(store):
    store.upsert_many(SCOPE, SECTION, [sample()])
    entry = store.list(SCOPE, SECTION)[0]
    entry.payload["sourceWidgetId"] = "mutated"
    entry.anchor.x = 1000
    fresh = store.list(SCOPE, SECTION)[0]
    assert fresh.payload["sourceWidgetId"] == "pdf-1"
    assert fresh.anchor.x == 20


def test_replace_dedupes_by_id_then_fingerprint(store):
    replaced = store.replace_section_suggestions(
        SCOPE,
        SECTION,
        [
            sample(id="a", fingerprint="f1", label="first"),
            sample(id="a", fingerprint="f2", label="same id"),
            sample(id="b", fingerprint="f1", label="same fingerprint"),
            sample(id="c", fingerprint="f3", label="third"),
        ],
    )
    assert [entry.label for entry in replaced] == ["first", "third"]
    store.replace_section_suggestions(SCOPE, SECTION, [])
    assert store.list(SCOPE, SECTION) == []


def test_transition_sets_only_matching_timestamp(store):
    store.upsert_many(SCOPE, SECTION, [sample()])
    ghosted = store.transition(SCOPE, SECTION, "s-1", "ghosted")
    assert ghosted.dismissed_at is not None
    assert ghosted.restored_at is None and ghosted.accepted_at is None and ghosted.discarded_at is None

    restored = store.transition(SCOPE, SECTION, "s-1", "restored")
    assert restored.restored_at is not None
    assert restored.dismissed_at == ghosted.dismissed_at
    assert restored.accepted_at is None

    accepted = store.transition(SCOPE, SECTION, "s-1", "accepted")
    assert accepted.accepted_at is not None
    assert accepted.restored_at == restored.restored_at
    assert accepted.discarded_at is None


def test_transition_rejects_unknown_ids_states_and_moves(store):
    store.upsert_many(SCOPE, SECTION, [sample()])
    assert store.transition(SCOPE, SECTION, "missing", "accepted") is None
    assert store.transition(SCOPE, SECTION, "s-1", "exploded") is None
    assert store.transition(SCOPE, SECTION, "s-1", "restored") is None
    assert store.transition(SCOPE, SECTION, "s-1", "discarded") is None
    assert store.get(SCOPE, SECTION, "s-1").state == "proposed"
    store.transition(SCOPE, SECTION, "s-1", "accepted")
    assert store.transition(SCOPE, SECTION, "s-1", "ghosted").state == "ghosted"


def test_prune_removes_bad_anchors_and_missing_sources(store):
    store.replace_section_suggestions(
        SCOPE,
        SECTION,
        [
            sample(),
            sample(id="s-2", fingerprint="missing-source", payload={"sourceWidgetId": "missing"}),
            sample(id="s-3", fingerprint="no-source", payload={}),
        ],
    )
    store._entries[(SCOPE, SECTION)].append(
        Suggestion(
            id="s-4",
            scope_id=SCOPE,
            section_id=SECTION,
            kind="expanded-area",
            label="broken",
            fingerprint="broken",
            anchor=Anchor(float("nan"), 1.0),
            created_at="2024-01-01T00:00:00.000+00:00",
            updated_at="2024-01-01T00:00:00.000+00:00",
        )
    )
    result = store.prune_invalid_anchors(SCOPE, SECTION, lambda widget_id: {"id": widget_id} if widget_id == "pdf-1" else None)
    assert (result.removed, result.kept) == (2, 2)
    assert sorted(entry.id for entry in store.list(SCOPE, SECTION)) == ["s-1", "s-3"]


def test_persistence_payload_uses_record_layout(store):
    store.upsert_many(SCOPE, SECTION, [sample(documentId="doc-1")])
    [record] = store.to_persistence_payload(SCOPE, SECTION)
    assert record["id"] == "s-1"
    assert record["scopeId"] == SCOPE
    assert record["sectionId"] == SECTION
    assert record["documentId"] == "doc-1"
    assert record["anchor"] == {"x": 20.0, "y": 40.0}
    assert record["state"] == "proposed"
    assert record["dismissedAt"] is None

    other = SuggestionStore()
    [restored] = other.replace_section_suggestions(SCOPE, SECTION, [record])
    assert restored.created_at == record["createdAt"]


@pytest.mark.parametrize("scope_id, section_id", [("", "sec"), ("nb", "  "), (None, "sec"), ("nb", None)])
def test_blank_scope_or_section_yields_empty_results(store, scope_id, section_id):
    assert store.upsert_many(scope_id, section_id, [sample()]) == []
    assert store.replace_section_suggestions(scope_id, section_id, [sample()]) == []
    assert store.list(scope_id, section_id) == []
    assert store.transition(scope_id, section_id, "s-1", "ghosted") is None
    result = store.prune_invalid_anchors(scope_id, section_id, None)
    assert (result.removed, result.kept) == (0, 0)
    assert store.to_persistence_payload(scope_id, section_id) == []
    assert store.scopes() == []


def test_partitions_never_leak(store):
    store.upsert_many(SCOPE, SECTION, [sample()])
    store.upsert_many(SCOPE, "other", [sample(label="elsewhere")])
    assert store.list(SCOPE, SECTION)[0].label == "Expand whitespace"
    assert store.list(SCOPE, "other")[0].label == "elsewhere"
    store.transition(SCOPE, "other", "s-1", "ghosted")
    assert store.get(SCOPE, SECTION, "s-1").state == "proposed"
    assert store.counts(SCOPE, "other") == {"ghosted": 1}


def test_apply_analysis_restores_partition_when_pruning_fails(store):
    store.upsert_many(SCOPE, SECTION, [sample()])
    store.transition(SCOPE, SECTION, "s-1", "ghosted")
    before = store.to_persistence_payload(SCOPE, SECTION)

    def lookup(widget_id):
        raise RuntimeError("lookup failed")

    with pytest.raises(RuntimeError):
        store.apply_analysis(SCOPE, SECTION, [sample(id="fresh", fingerprint="other")], lookup)
    assert store.to_persistence_payload(SCOPE, SECTION) == before

    with pytest.raises(RuntimeError):
        store.apply_analysis(SCOPE, "empty", [sample()], lookup)
    assert (SCOPE, "empty") not in store.scopes()


def test_apply_analysis_merges_then_prunes(store):
    merged, pruned = store.apply_analysis(
        SCOPE,
        SECTION,
        [sample(), sample(id="s-2", fingerprint="gone", payload={"sourceWidgetId": "gone"})],
        lambda widget_id: widget_id == "pdf-1",
    )
    assert len(merged) == 2
    assert (pruned.removed, pruned.kept) == (1, 1)
    assert [entry.id for entry in store.list(SCOPE, SECTION)] == ["s-1"]
