from __future__ import annotations

import hashlib
import json

from deskgate.core.audit import AuditBuilder, canonical_json, generate_signature
from deskgate.core.models import (
    Action,
    ActionOrigin,
    ActionPlan,
    ActionResult,
    ActionType,
    CreateDirectoryArgs,
    PlanStatus,
)
from deskgate.core.store import InMemoryHistoryStore


def _plan(name: str = "/tmp/x") -> ActionPlan:
    return ActionPlan(
        origin=ActionOrigin(user_input=f"mkdir {name}"),
        actions=[
            Action(type=ActionType.fs_create_directory, args=CreateDirectoryArgs(path=name))
        ],
        summary=f"Create directory: {name}",
        risk_score=0.15,
    )


def test_signature_is_sha256_of_entry_and_previous_hash():
    expected = hashlib.sha256(b'{"a":1}' + b"prev").hexdigest()

    assert generate_signature('{"a":1}', "prev") == expected


def test_prepare_entry_uses_external_last_hash():
    builder = AuditBuilder(last_hash=lambda: "abc123")
    plan = _plan()
    result = ActionResult(
        action_id=plan.id, success=True, status=PlanStatus.completed, executed_at=1
    )

    entry = builder.prepare_entry(plan, result)

    assert entry.prev_hash == "abc123"
    assert entry.action_id == plan.id
    assert entry.signature == generate_signature(entry.entry_json, "abc123")
    payload = json.loads(entry.entry_json)
    assert payload["action_plan"]["id"] == plan.id
    assert payload["result"]["status"] == "completed"
    assert entry.entry_json == canonical_json(payload)


def test_entry_without_result_omits_result_key():
    entry = AuditBuilder().prepare_entry(_plan())

    assert entry.prev_hash == ""
    assert "result" not in json.loads(entry.entry_json)


def test_record_chains_entries_through_the_store():
    store = InMemoryHistoryStore()

    first = AuditBuilder.record(store, _plan("/tmp/a"))
    second = AuditBuilder.record(store, _plan("/tmp/b"))

    assert first.prev_hash == ""
    assert second.prev_hash == first.signature
    assert store.get_last_hash() == second.signature
    report = AuditBuilder.verify_chain(store.all_entries())
    assert report.valid is True
    assert report.checked == 2


def test_verify_chain_detects_tampering():
    store = InMemoryHistoryStore()
    for name in ("/tmp/a", "/tmp/b", "/tmp/c"):
        AuditBuilder.record(store, _plan(name))
    entries = store.all_entries()
    entries[1] = entries[1].model_copy(
        update={"entry_json": entries[1].entry_json.replace("/tmp/b", "/tmp/evil")}
    )

    report = AuditBuilder.verify_chain(entries)

    assert report.valid is False
    assert report.broken_at == entries[1].id
    assert report.checked == 1


def test_verify_chain_detects_missing_link():
    store = InMemoryHistoryStore()
    for name in ("/tmp/a", "/tmp/b", "/tmp/c"):
        AuditBuilder.record(store, _plan(name))
    entries = store.all_entries()

    report = AuditBuilder.verify_chain([entries[0], entries[2]])

    assert report.valid is False
    assert report.broken_at == entries[2].id


def test_verify_chain_accepts_a_trailing_window():
    store = InMemoryHistoryStore()
    for name in ("/tmp/a", "/tmp/b", "/tmp/c"):
        AuditBuilder.record(store, _plan(name))

    report = AuditBuilder.verify_chain(store.all_entries()[1:])

    assert report.valid is True
    assert report.checked == 2


def test_empty_chain_is_valid():
    assert AuditBuilder.verify_chain([]).valid is True
