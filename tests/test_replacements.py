from __future__ import annotations

import threading
from datetime import timedelta

from conftest import ELOCUTION_WINNERS

from fest_core import FestCore, ProgramRegistration, Role


def _request(fest: FestCore, old: str = "s1", new: str = "s6", team: str = "T1", program: str = "elocution"):
    return fest.create_replacement_request(program, old, new, team, "Fell ill", role=Role.TEAM)


def _registered(store, program_id: str) -> set[str]:
    return {r.student_id for r in store.list_registrations(program_id=program_id)}


def test_request_refused_while_window_open(fest, store, clock):
    fest.registrations.set_schedule(clock() - timedelta(days=1), clock() + timedelta(days=1), Role.ADMIN)
    outcome = _request(fest)
    assert outcome.kind == "registration_open"
    assert store.replacement_requests == {}


def test_request_allowed_once_window_closed(fest, clock):
    fest.registrations.set_schedule(clock() - timedelta(days=2), clock() - timedelta(days=1), Role.ADMIN)
    outcome = _request(fest)
    assert outcome.ok
    assert outcome.value.status == "pending"
    assert outcome.value.reason == "Fell ill"
    assert outcome.events == []


def test_approval_swaps_registration(fest, store, recorded):
    request = _request(fest).value
    decided = fest.decide_replacement_request(request.id, "approved", role=Role.ADMIN)
    assert decided.ok
    assert decided.value.status == "approved"
    assert decided.value.reviewed_by == "admin"
    assert decided.value.reviewed_at is not None
    assert _registered(store, "elocution") == {"s6", "s3", "s5"}
    assert [(e.channel, e.kind) for e in recorded] == [("registrations", "created")]
    assert recorded[0].ids["replacedStudentId"] == "s1"


def test_rejection_leaves_registrations_alone(fest, store, recorded):
    request = _request(fest).value
    decided = fest.decide_replacement_request(request.id, "rejected", role=Role.ADMIN)
    assert decided.value.status == "rejected"
    assert _registered(store, "elocution") == {"s1", "s3", "s5"}
    assert recorded == []


def test_decision_is_terminal(fest):
    request = _request(fest).value
    fest.decide_replacement_request(request.id, "rejected", role=Role.ADMIN)
    again = fest.decide_replacement_request(request.id, "approved", role=Role.ADMIN)
    assert again.kind == "invalid_transition"


def test_only_admin_decides(fest, store):
    request = _request(fest).value
    outcome = fest.decide_replacement_request(request.id, "approved", role=Role.TEAM)
    assert outcome.kind == "unauthorized"
    assert store.get_request(request.id).status == "pending"
    assert fest.decide_replacement_request("missing", "approved", role=Role.ADMIN).kind == "request_not_found"
    assert fest.decide_replacement_request(request.id, "maybe", role=Role.ADMIN).kind == "invalid_payload"


def test_failed_swap_keeps_request_pending(fest, store, clock):
    request = _request(fest).value
    # The new student got registered some other way in the meantime.
    store.insert_registration(
        ProgramRegistration(id="late", program_id="elocution", student_id="s6", team_id="T1", timestamp=clock()),
        capacity=5,
    )
    outcome = fest.decide_replacement_request(request.id, "approved", role=Role.ADMIN)
    assert outcome.kind == "new_already_registered"
    assert store.get_request(request.id).status == "pending"
    assert _registered(store, "elocution") == {"s1", "s3", "s5", "s6"}


def test_duplicate_pending_request(fest):
    assert _request(fest).ok
    outcome = _request(fest, new="s2")
    assert outcome.kind == "duplicate_pending_request"
    assert "Amal" in outcome.message


def test_new_request_allowed_after_decision(fest):
    first = _request(fest).value
    fest.decide_replacement_request(first.id, "rejected", role=Role.ADMIN)
    assert _request(fest, new="s2").ok


def test_published_program_refuses_requests(fest):
    record = fest.submit_result("elocution", "J1", ELOCUTION_WINNERS, role=Role.JURY).value
    fest.approve_result(record.id, role=Role.ADMIN)
    assert _request(fest).kind == "program_published"


def test_membership_and_registration_checks(fest):
    assert _request(fest, program="nope").kind == "program_not_found"
    assert _request(fest, new="s1").kind == "same_student"
    assert _request(fest, old="s3").kind == "not_team_member"
    assert _request(fest, new="s7").kind == "not_team_member"
    assert _request(fest, old="s2").kind == "old_not_registered"
    assert _request(fest, old="s6", new="s2", program="poetry").kind == "old_not_registered"


def test_new_student_already_registered(fest, store, clock):
    store.insert_registration(
        ProgramRegistration(id="r9", program_id="elocution", student_id="s6", team_id="T1", timestamp=clock()),
        capacity=5,
    )
    assert _request(fest).kind == "new_already_registered"


def test_blank_reason_is_invalid(fest):
    outcome = fest.create_replacement_request("elocution", "s1", "s6", "T1", "  <> ", role=Role.TEAM)
    assert outcome.kind == "invalid_payload"


def test_public_cannot_request(fest):
    outcome = fest.create_replacement_request("elocution", "s1", "s6", "T1", "ill", role=Role.PUBLIC)
    assert outcome.kind == "unauthorized"


def test_team_sees_only_its_requests(fest):
    _request(fest)
    fest.create_replacement_request("elocution", "s3", "s7", "T2", "Travel", role=Role.TEAM)
    assert [r.old_student_id for r in fest.replacements.list_requests(team_id="T2")] == ["s3"]
    assert len(fest.replacements.list_requests()) == 2


def test_concurrent_reader_sees_exactly_one_registration(fest, store):
    stop = threading.Event()
    barrier = threading.Barrier(2)
    snapshots: list[set[str]] = []

    def reader():
        barrier.wait()
        while not stop.is_set():
            snapshots.append(_registered(store, "elocution") & {"s1", "s6"})

    thread = threading.Thread(target=reader)
    thread.start()
    barrier.wait()
    old, new = "s1", "s6"
    try:
        for _ in range(50):
            request = _request(fest, old=old, new=new).value
            assert fest.decide_replacement_request(request.id, "approved", role=Role.ADMIN).ok
            old, new = new, old
    finally:
        stop.set()
        thread.join()

    assert snapshots
    assert all(len(seen) == 1 for seen in snapshots)
    assert _registered(store, "elocution") == {"s1", "s3", "s5"}


def test_concurrent_approvals_of_one_request_swap_once(fest, store):
    request = _request(fest).value
    barrier = threading.Barrier(4)
    outcomes = []

    def approve():
        barrier.wait()
        outcomes.append(fest.decide_replacement_request(request.id, "approved", role=Role.ADMIN))

    threads = [threading.Thread(target=approve) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sum(1 for o in outcomes if o.ok) == 1
    assert {o.kind for o in outcomes if not o.ok} == {"invalid_transition"}
    assert _registered(store, "elocution") == {"s6", "s3", "s5"}
