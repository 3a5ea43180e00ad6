"""
Placement orchestrator

Tests:
- assign: first placement, replacement, reason rule, pointer sync, conflicts
- dnd-move: reject, bump all, bump one named event
- dnd-place: re-timing with the UPDATE audit shape
- unassign: idempotent delete
- rollback: a failure mid-placement leaves no partial state
- list: layout/range/cancelled filtering
"""

import pytest
from sqlmodel import Session

from hangarplan.models import EventAuditAction, EventStatus
from hangarplan.services import audit_recorder, reservation_store
from hangarplan.services.placement_orchestrator import (
    INITIAL_ASSIGNMENT_REASON,
    assign_reservation,
    dnd_move,
    dnd_place,
    list_reservations,
    unassign_reservation,
)
from hangarplan.services.planning_errors import (
    PlanningNotFoundError,
    PlanningValidationError,
    StandConflictError,
)
from tests.conftest import at


def _audit_count(session: Session, event_id: int) -> int:
    return len(audit_recorder.history(session, event_id))


# ============================================================================
# assign_reservation
# ============================================================================


def test_first_assignment_syncs_pointer_and_audits(session: Session, hangar, make_event):
    event = make_event("A-check", at(0), at(8))
    a1 = hangar.stands["A1"]

    result = assign_reservation(session, event.id, hangar.layout.id, a1.id, actor="planner@mro")
    session.refresh(event)

    assert result.reservation.stand_id == a1.id
    assert (result.reservation.start_at, result.reservation.end_at) == (at(0), at(8))
    assert result.window_diverges is False
    assert event.layout_id == hangar.layout.id
    assert event.hangar_id == hangar.hangar.id

    [entry] = audit_recorder.history(session, event.id)
    assert entry.action == EventAuditAction.RESERVE.value
    assert entry.actor == "planner@mro"
    assert entry.reason == INITIAL_ASSIGNMENT_REASON
    assert entry.changes["kind"] == "reserve"
    assert entry.changes["reservation"]["from"] is None
    assert entry.changes["reservation"]["to"] == {
        "layout_id": hangar.layout.id,
        "stand_id": a1.id,
        "start_at": "2026-03-02T08:00:00.000Z",
        "end_at": "2026-03-02T16:00:00.000Z",
    }
    assert entry.changes["event_window"] is None


def test_changing_assignment_requires_reason(session: Session, hangar, make_event):
    event = make_event("A-check", at(0), at(8))
    a1, a2 = hangar.stands["A1"], hangar.stands["A2"]
    assign_reservation(session, event.id, hangar.layout.id, a1.id, actor="planner")

    with pytest.raises(PlanningValidationError):
        assign_reservation(session, event.id, hangar.layout.id, a2.id, actor="planner")
    assert reservation_store.get_by_event(session, event.id).stand_id == a1.id
    assert _audit_count(session, event.id) == 1

    with pytest.raises(PlanningValidationError):
        assign_reservation(session, event.id, hangar.layout.id, a2.id, actor="planner", change_reason="   ")

    result = assign_reservation(
        session, event.id, hangar.layout.id, a2.id, actor="planner", change_reason="A1 jacks unavailable"
    )
    assert result.reservation.stand_id == a2.id

    latest = audit_recorder.history(session, event.id)[0]
    assert latest.reason == "A1 jacks unavailable"
    assert latest.changes["reservation"]["from"]["stand_id"] == a1.id
    assert latest.changes["reservation"]["to"]["stand_id"] == a2.id


def test_reassigning_same_placement_needs_no_reason(session: Session, hangar, make_event):
    event = make_event("A-check", at(0), at(8))
    a1 = hangar.stands["A1"]
    assign_reservation(session, event.id, hangar.layout.id, a1.id, actor="planner")

    result = assign_reservation(session, event.id, hangar.layout.id, a1.id, actor="planner")

    assert result.reservation.stand_id == a1.id


def test_assign_into_occupied_stand_is_rejected(session: Session, hangar, make_event):
    a1 = hangar.stands["A1"]
    holder = make_event("C-check", at(0), at(48), tail="OH-LWB")
    newcomer = make_event("A-check", at(24), at(30))
    assign_reservation(session, holder.id, hangar.layout.id, a1.id, actor="planner")

    with pytest.raises(StandConflictError) as exc_info:
        assign_reservation(session, newcomer.id, hangar.layout.id, a1.id, actor="planner")

    assert exc_info.value.blocking.event_id == holder.id
    assert exc_info.value.to_dict()["blocking_tail_number"] == "OH-LWB"
    assert "C-check (OH-LWB)" in exc_info.value.message
    # Never displaces
    assert reservation_store.get_by_event(session, holder.id) is not None
    assert reservation_store.get_by_event(session, newcomer.id) is None


def test_assign_next_to_touching_reservation(session: Session, hangar, make_event):
    a1 = hangar.stands["A1"]
    first = make_event("A-check", at(0), at(8))
    second = make_event("Wash", at(8), at(10), tail="OH-LWB")
    assign_reservation(session, first.id, hangar.layout.id, a1.id, actor="planner")

    result = assign_reservation(session, second.id, hangar.layout.id, a1.id, actor="planner")

    assert result.reservation.start_at == at(8)


def test_cancelled_holder_does_not_block_assignment(session: Session, hangar, make_event):
    a1 = hangar.stands["A1"]
    holder = make_event("C-check", at(0), at(8), tail="OH-LWB")
    assign_reservation(session, holder.id, hangar.layout.id, a1.id, actor="planner")
    holder.status = EventStatus.CANCELLED.value
    session.add(holder)
    session.commit()

    newcomer = make_event("A-check", at(2), at(6))
    result = assign_reservation(session, newcomer.id, hangar.layout.id, a1.id, actor="planner")

    assert result.reservation.stand_id == a1.id


def test_assign_window_override_is_reported(session: Session, hangar, make_event):
    event = make_event("A-check", at(0), at(8))
    a1 = hangar.stands["A1"]

    result = assign_reservation(
        session, event.id, hangar.layout.id, a1.id, actor="planner", start_at=at(2), end_at=at(6)
    )

    assert result.window_diverges is True
    assert (result.reservation.start_at, result.reservation.end_at) == (at(2), at(6))
    entry = audit_recorder.history(session, event.id)[0]
    assert entry.changes["event_window"] == {
        "start_at": "2026-03-02T08:00:00.000Z",
        "end_at": "2026-03-02T16:00:00.000Z",
    }


def test_assign_validation_errors(session: Session, hangar, make_event):
    event = make_event("A-check", at(0), at(8))

    with pytest.raises(PlanningValidationError):
        assign_reservation(
            session, event.id, hangar.layout.id, hangar.stands["A1"].id, actor="p", start_at=at(5), end_at=at(5)
        )
    with pytest.raises(PlanningValidationError):
        # B1 belongs to the other layout
        assign_reservation(session, event.id, hangar.layout.id, hangar.stands["B1"].id, actor="p")
    with pytest.raises(PlanningValidationError):
        assign_reservation(session, event.id, hangar.layout.id, hangar.stands["A3"].id, actor="p")

    assert reservation_store.get_by_event(session, event.id) is None
    assert _audit_count(session, event.id) == 0


def test_assign_not_found_errors(session: Session, hangar, make_event):
    event = make_event("A-check", at(0), at(8))

    with pytest.raises(PlanningNotFoundError):
        assign_reservation(session, 9999, hangar.layout.id, hangar.stands["A1"].id, actor="p")
    with pytest.raises(PlanningNotFoundError):
        assign_reservation(session, event.id, 9999, hangar.stands["A1"].id, actor="p")
    with pytest.raises(PlanningNotFoundError):
        assign_reservation(session, event.id, hangar.layout.id, 9999, actor="p")


# ============================================================================
# dnd_move
# ============================================================================


@pytest.fixture
def crowded_stand(session: Session, hangar, make_event):
    """A1 holds two events; the mover sits on A2 overlapping both"""
    a1, a2 = hangar.stands["A1"], hangar.stands["A2"]
    early = make_event("Early check", at(0), at(3), tail="OH-LWB")
    late = make_event("Late check", at(4), at(7), tail="OH-LWC")
    mover = make_event("AOG repair", at(1), at(6))
    for event, stand in ((early, a1), (late, a1), (mover, a2)):
        assign_reservation(session, event.id, hangar.layout.id, stand.id, actor="planner")
    return early, late, mover


def test_dnd_move_without_bump_rejects(session: Session, hangar, crowded_stand):
    early, late, mover = crowded_stand

    with pytest.raises(StandConflictError) as exc_info:
        dnd_move(
            session, mover.id, hangar.layout.id, hangar.stands["A1"].id, actor="p", change_reason="Needs A1 tooling"
        )

    assert exc_info.value.blocking.event_id == early.id
    assert reservation_store.get_by_event(session, mover.id).stand_id == hangar.stands["A2"].id


def test_dnd_move_bumps_all_overlapping(session: Session, hangar, crowded_stand):
    early, late, mover = crowded_stand
    a1 = hangar.stands["A1"]

    result = dnd_move(
        session,
        mover.id,
        hangar.layout.id,
        a1.id,
        actor="duty-manager",
        bump_on_conflict=True,
        change_reason="AOG takes A1",
    )

    assert sorted(result.bumped_event_ids) == sorted([early.id, late.id])
    assert reservation_store.get_by_event(session, mover.id).stand_id == a1.id
    for victim in (early, late):
        session.refresh(victim)
        assert reservation_store.get_by_event(session, victim.id) is None
        assert victim.status == EventStatus.DRAFT.value
        assert victim.layout_id is None
        assert victim.hangar_id is None
        bumped_entry = audit_recorder.history(session, victim.id)[0]
        assert bumped_entry.changes["displaced_by_event_id"] == mover.id

    entry = audit_recorder.history(session, mover.id)[0]
    assert entry.action == EventAuditAction.RESERVE.value
    assert entry.changes["bump"]["requested"] is True
    assert sorted(entry.changes["bump"]["displaced_event_ids"]) == sorted([early.id, late.id])


def test_dnd_move_bumps_only_named_event_when_alone(session: Session, hangar, make_event):
    a1, a2 = hangar.stands["A1"], hangar.stands["A2"]
    holder = make_event("Borescope", at(0), at(4), tail="OH-LWB")
    mover = make_event("AOG repair", at(1), at(3))
    assign_reservation(session, holder.id, hangar.layout.id, a1.id, actor="p")
    assign_reservation(session, mover.id, hangar.layout.id, a2.id, actor="p")

    result = dnd_move(
        session,
        mover.id,
        hangar.layout.id,
        a1.id,
        actor="p",
        bump_on_conflict=True,
        bumped_event_id=holder.id,
        change_reason="Swap",
    )

    assert result.bumped_event_ids == [holder.id]


def test_dnd_move_named_bump_fails_if_others_overlap(session: Session, hangar, crowded_stand):
    early, late, mover = crowded_stand

    with pytest.raises(StandConflictError) as exc_info:
        dnd_move(
            session,
            mover.id,
            hangar.layout.id,
            hangar.stands["A1"].id,
            actor="p",
            bump_on_conflict=True,
            bumped_event_id=late.id,
            change_reason="Only the late one",
        )

    assert exc_info.value.blocking.event_id == early.id
    # Nothing displaced
    assert reservation_store.get_by_event(session, early.id) is not None
    assert reservation_store.get_by_event(session, late.id) is not None
    session.refresh(late)
    assert late.status == EventStatus.PLANNED.value


def test_dnd_move_reason_rules(session: Session, hangar, make_event):
    event = make_event("A-check", at(0), at(8))
    a1, a2 = hangar.stands["A1"], hangar.stands["A2"]
    assign_reservation(session, event.id, hangar.layout.id, a1.id, actor="p")

    with pytest.raises(PlanningValidationError):
        dnd_move(session, event.id, hangar.layout.id, a2.id, actor="p")

    # Dropping back onto the same stand is a no-op that still gets audited
    before = _audit_count(session, event.id)
    dnd_move(session, event.id, hangar.layout.id, a1.id, actor="p")
    assert _audit_count(session, event.id) == before + 1


def test_dnd_move_cannot_bump_itself(session: Session, hangar, make_event):
    event = make_event("A-check", at(0), at(8))

    with pytest.raises(PlanningValidationError):
        dnd_move(
            session,
            event.id,
            hangar.layout.id,
            hangar.stands["A1"].id,
            actor="p",
            bump_on_conflict=True,
            bumped_event_id=event.id,
            change_reason="x",
        )


def test_dnd_move_resyncs_diverged_window(session: Session, hangar, make_event):
    event = make_event("A-check", at(0), at(8))
    assign_reservation(
        session, event.id, hangar.layout.id, hangar.stands["A1"].id, actor="p", start_at=at(1), end_at=at(2)
    )

    result = dnd_move(
        session, event.id, hangar.layout.id, hangar.stands["A2"].id, actor="p", change_reason="Move"
    )

    assert (result.reservation.start_at, result.reservation.end_at) == (at(0), at(8))


# ============================================================================
# dnd_place
# ============================================================================


def test_dnd_place_retimes_event_and_reservation(session: Session, hangar, make_event):
    a1 = hangar.stands["A1"]
    holder = make_event("C-check", at(0), at(8), tail="OH-LWB")
    event = make_event("A-check", at(0), at(4))
    assign_reservation(session, holder.id, hangar.layout.id, a1.id, actor="p")

    result = dnd_place(
        session, event.id, hangar.layout.id, a1.id, start_at=at(8), end_at=at(12), actor="p", change_reason="After C"
    )
    session.refresh(event)

    assert result.bumped_event_ids == []
    assert (event.start_at, event.end_at) == (at(8), at(12))
    assert (result.reservation.start_at, result.reservation.end_at) == (at(8), at(12))
    assert event.layout_id == hangar.layout.id

    entry = audit_recorder.history(session, event.id)[0]
    assert entry.action == EventAuditAction.UPDATE.value
    assert entry.changes["kind"] == "update"
    assert entry.changes["fields"]["start_at"] == {
        "from": "2026-03-02T08:00:00.000Z",
        "to": "2026-03-02T16:00:00.000Z",
    }
    assert entry.changes["fields"]["layout_id"] == {"from": None, "to": hangar.layout.id}
    assert entry.changes["reservation"]["from"] is None
    assert entry.changes["bump"] == {"requested": False, "displaced_event_ids": []}


def test_dnd_place_rejects_inverted_window(session: Session, hangar, make_event):
    event = make_event("A-check", at(0), at(4))

    with pytest.raises(PlanningValidationError):
        dnd_place(
            session,
            event.id,
            hangar.layout.id,
            hangar.stands["A1"].id,
            start_at=at(6),
            end_at=at(5),
            actor="p",
            change_reason="x",
        )
    session.refresh(event)
    assert event.start_at == at(0)


def test_dnd_place_conflicts_use_new_window(session: Session, hangar, make_event):
    a1 = hangar.stands["A1"]
    holder = make_event("C-check", at(10), at(20), tail="OH-LWB")
    event = make_event("A-check", at(0), at(4))
    assign_reservation(session, holder.id, hangar.layout.id, a1.id, actor="p")

    with pytest.raises(StandConflictError):
        dnd_place(
            session, event.id, hangar.layout.id, a1.id, start_at=at(12), end_at=at(14), actor="p", change_reason="x"
        )
    session.refresh(event)
    assert (event.start_at, event.end_at) == (at(0), at(4))


# ============================================================================
# unassign_reservation
# ============================================================================


def test_unassign_is_idempotent(session: Session, hangar, make_event):
    event = make_event("A-check", at(0), at(8))
    assign_reservation(session, event.id, hangar.layout.id, hangar.stands["A1"].id, actor="p")

    assert unassign_reservation(session, event.id, actor="p") == 1
    assert unassign_reservation(session, event.id, actor="p") == 0

    history = audit_recorder.history(session, event.id)
    assert [h.action for h in history] == [EventAuditAction.UNRESERVE.value, EventAuditAction.RESERVE.value]
    assert history[0].changes["kind"] == "unreserve"
    assert history[0].changes["reservation"]["to"] is None

    session.refresh(event)
    assert event.layout_id is None
    assert event.hangar_id == hangar.hangar.id
    assert event.status == EventStatus.PLANNED.value


def test_unassign_unknown_event_returns_zero(session: Session):
    assert unassign_reservation(session, 4242, actor="p") == 0


# ============================================================================
# Atomicity
# ============================================================================


def test_failure_after_bump_rolls_everything_back(session: Session, hangar, crowded_stand, monkeypatch):
    early, late, mover = crowded_stand
    audits_before = {e.id: _audit_count(session, e.id) for e in (early, late, mover)}

    def broken_upsert(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(reservation_store, "upsert", broken_upsert)

    with pytest.raises(RuntimeError):
        dnd_move(
            session,
            mover.id,
            hangar.layout.id,
            hangar.stands["A1"].id,
            actor="p",
            bump_on_conflict=True,
            change_reason="AOG",
        )

    monkeypatch.undo()
    for victim in (early, late):
        session.refresh(victim)
        assert victim.status == EventStatus.PLANNED.value
        assert victim.layout_id == hangar.layout.id
        assert reservation_store.get_by_event(session, victim.id).stand_id == hangar.stands["A1"].id
    assert reservation_store.get_by_event(session, mover.id).stand_id == hangar.stands["A2"].id
    assert {e.id: _audit_count(session, e.id) for e in (early, late, mover)} == audits_before


@pytest.fixture
def packed_stand(session: Session, hangar, make_event):
    """A1 holds three back-to-back events; the mover sits on A2 spanning all of them"""
    a1, a2 = hangar.stands["A1"], hangar.stands["A2"]
    holders = [
        make_event("Wheel change", at(0), at(2), tail="OH-LWA"),
        make_event("Borescope", at(2), at(4), tail="OH-LWB"),
        make_event("Cabin refit", at(4), at(6), tail="OH-LWC"),
    ]
    mover = make_event("Engine change", at(1), at(5), tail="OH-LWA")
    for event in holders:
        assign_reservation(session, event.id, hangar.layout.id, a1.id, actor="planner")
    assign_reservation(session, mover.id, hangar.layout.id, a2.id, actor="planner")
    return holders, mover


def test_failure_between_displacements_keeps_every_holder(session: Session, hangar, packed_stand, monkeypatch):
    holders, mover = packed_stand
    audits_before = {e.id: _audit_count(session, e.id) for e in (*holders, mover)}
    real_record = audit_recorder.record
    calls = []

    def record_once_then_fail(*args, **kwargs):
        calls.append(kwargs.get("event_id"))
        if len(calls) == 2:
            raise RuntimeError("audit store unavailable")
        return real_record(*args, **kwargs)

    monkeypatch.setattr(audit_recorder, "record", record_once_then_fail)

    with pytest.raises(RuntimeError):
        dnd_move(
            session,
            mover.id,
            hangar.layout.id,
            hangar.stands["A1"].id,
            actor="p",
            bump_on_conflict=True,
            change_reason="Engine change needs the crane",
        )

    monkeypatch.undo()
    # The first holder was already displaced when the second failed
    assert calls[0] == holders[0].id
    for holder in holders:
        session.refresh(holder)
        assert holder.status == EventStatus.PLANNED.value
        assert holder.layout_id == hangar.layout.id
        assert holder.hangar_id == hangar.hangar.id
        assert reservation_store.get_by_event(session, holder.id).stand_id == hangar.stands["A1"].id
    assert reservation_store.get_by_event(session, mover.id).stand_id == hangar.stands["A2"].id
    assert {e.id: _audit_count(session, e.id) for e in (*holders, mover)} == audits_before


def test_audit_failure_rolls_back_reservation(session: Session, hangar, make_event, monkeypatch):
    event = make_event("A-check", at(0), at(8))

    def broken_record(*args, **kwargs):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr(audit_recorder, "record", broken_record)

    with pytest.raises(RuntimeError):
        assign_reservation(session, event.id, hangar.layout.id, hangar.stands["A1"].id, actor="p")

    monkeypatch.undo()
    session.refresh(event)
    assert reservation_store.get_by_event(session, event.id) is None
    assert event.layout_id is None


# ============================================================================
# list_reservations
# ============================================================================


def test_list_reservations_filters_and_orders(session: Session, hangar, make_event):
    a1, a2, b1 = hangar.stands["A1"], hangar.stands["A2"], hangar.stands["B1"]
    later = make_event("Later", at(10), at(12))
    earlier = make_event("Earlier", at(0), at(2), tail="OH-LWB")
    cancelled = make_event("Cancelled", at(4), at(6), tail="OH-LWC")
    elsewhere = make_event("Other layout", at(0), at(2), tail="OH-LWC")
    outside = make_event("Next month", at(24 * 30), at(24 * 31))
    assign_reservation(session, later.id, hangar.layout.id, a1.id, actor="p")
    assign_reservation(session, earlier.id, hangar.layout.id, a2.id, actor="p")
    assign_reservation(session, cancelled.id, hangar.layout.id, a1.id, actor="p")
    assign_reservation(session, elsewhere.id, hangar.other_layout.id, b1.id, actor="p")
    assign_reservation(session, outside.id, hangar.layout.id, a2.id, actor="p")
    cancelled.status = EventStatus.CANCELLED.value
    session.add(cancelled)
    session.commit()

    rows = list_reservations(session, hangar.layout.id, from_at=at(-24), to_at=at(48))

    assert [row.event.id for row in rows] == [earlier.id, later.id]
    assert rows[0].stand.code == "A2"
    assert rows[0].tail_number == "OH-LWB"