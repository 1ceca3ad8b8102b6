from datetime import timedelta

import pytest
from bson import ObjectId

from tasknotify.domain.enums import DispatchReason
from tasknotify.services.scanner_service import DueDateScanner

from tests.conftest import NOW


@pytest.fixture
def scanner(task_repo, dispatcher, settings, clock):
    return DueDateScanner(task_repo, dispatcher, settings, clock=clock)


@pytest.fixture
def bob_linked(identity_repo):
    identity_repo.add_active("c-bob", "u-bob", NOW - timedelta(days=1))


@pytest.mark.asyncio
async def test_due_soon_notifies_once(scanner, task_repo, webhook, bob_linked):
    task_repo.put("t-1", title="Ship", status="pending", assignees=["u-bob"], due_date=NOW + timedelta(hours=12))

    first = await scanner.scan_due_soon()
    second = await scanner.scan_due_soon()

    assert first.claimed == 1
    assert first.sent_count == 1
    assert webhook.payloads[0]["notification_type"] == "task_due_soon"
    assert webhook.payloads[0]["text"] == "📅 Due in 12 hours"
    assert second.claimed == 0
    assert second.skipped == 1
    assert len(webhook.requests) == 1


@pytest.mark.asyncio
async def test_due_soon_rearms_when_due_date_moves(scanner, task_repo, webhook, clock, bob_linked):
    task_repo.put("t-1", title="Ship", status="pending", assignees=["u-bob"], due_date=NOW + timedelta(hours=12))
    await scanner.scan_due_soon()

    task_repo.put("t-1", due_date=NOW + timedelta(hours=20))
    summary = await scanner.scan_due_soon()

    assert summary.claimed == 1
    assert len(webhook.requests) == 2
    assert webhook.payloads[1]["text"] == "📅 Due in 20 hours"


@pytest.mark.asyncio
async def test_due_soon_ignores_tasks_outside_window(scanner, task_repo, webhook, bob_linked):
    task_repo.put("t-far", status="pending", assignees=["u-bob"], due_date=NOW + timedelta(hours=30))
    task_repo.put("t-past", status="pending", assignees=["u-bob"], due_date=NOW - timedelta(hours=1))
    task_repo.put("t-done", status="completed", assignees=["u-bob"], due_date=NOW + timedelta(hours=2))

    summary = await scanner.scan_due_soon()

    assert summary.candidates == 0
    assert webhook.requests == []


@pytest.mark.asyncio
async def test_unassigned_task_is_skipped_without_claim(scanner, task_repo):
    task_repo.put("t-1", status="pending", assignees=[], due_date=NOW + timedelta(hours=2))

    summary = await scanner.scan_due_soon()

    assert summary.skipped == 1
    assert "due_soon_notified_for" not in task_repo.docs["t-1"]


@pytest.mark.asyncio
async def test_overdue_once_per_day(scanner, task_repo, webhook, clock, bob_linked):
    task_repo.put("t-1", title="Report", status="in_progress", assignees=["u-bob"], due_date=NOW - timedelta(days=2))

    first = await scanner.scan_overdue()
    again = await scanner.scan_overdue(now=NOW + timedelta(hours=6))
    clock.advance(days=1)
    next_day = await scanner.scan_overdue()

    assert first.claimed == 1
    assert again.claimed == 0
    assert next_day.claimed == 1
    assert [p["text"] for p in webhook.payloads] == [
        "🔥 Task is 2 day(s) overdue!",
        "🔥 Task is 3 day(s) overdue!",
    ]
    assert task_repo.docs["t-1"]["last_overdue_notified_on"] == "2024-05-11"


@pytest.mark.asyncio
async def test_task_due_earlier_today_is_not_yet_overdue(scanner, task_repo, webhook, bob_linked):
    task_repo.put("t-1", status="pending", assignees=["u-bob"], due_date=NOW - timedelta(hours=3))

    summary = await scanner.scan_overdue()

    assert summary.candidates == 0
    assert webhook.requests == []


@pytest.mark.asyncio
async def test_overdue_fans_out_to_every_assignee(scanner, task_repo, identity_repo, bob_linked):
    task_repo.put("t-1", status="pending", assignees=["u-bob", "u-carol"], due_date=NOW - timedelta(days=1))

    summary = await scanner.scan_overdue()

    assert [(r.recipient, r.reason) for r in summary.results] == [
        ("u-bob", DispatchReason.SENT),
        ("u-carol", DispatchReason.NO_MAPPING),
    ]
    assert summary.sent_count == 1


@pytest.mark.asyncio
async def test_tasks_with_object_id_keys_are_claimed(scanner, task_repo, webhook, bob_linked):
    overdue_id, due_soon_id = ObjectId(), ObjectId()
    task_repo.put(overdue_id, title="Report", status="pending", assignees=["u-bob"], due_date=NOW - timedelta(days=2))
    task_repo.put(due_soon_id, title="Ship", status="pending", assignees=["u-bob"], due_date=NOW + timedelta(hours=12))

    overdue = await scanner.scan_overdue()
    due_soon = await scanner.scan_due_soon()

    assert overdue.claimed == 1
    assert due_soon.claimed == 1
    assert len(webhook.requests) == 2
    assert task_repo.docs[overdue_id]["last_overdue_notified_on"] == "2024-05-10"
    assert task_repo.docs[due_soon_id]["due_soon_notified_for"] == NOW + timedelta(hours=12)
