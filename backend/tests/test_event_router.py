from unittest.mock import AsyncMock, MagicMock

import pytest

from tasknotify.domain.enums import NotificationEventType, DispatchReason
from tasknotify.domain.models import NotificationEvent, TaskSnapshot, ProjectSnapshot, DispatchResult
from tasknotify.services.event_router import NotificationRouter


def ok(recipient):
    return DispatchResult(sent=True, reason=DispatchReason.SENT, recipient=recipient)


@pytest.fixture
def dispatcher():
    mock = MagicMock()
    mock.notify_user = AsyncMock(side_effect=lambda uid, event, **kwargs: ok(uid))
    mock.notify_users = AsyncMock(side_effect=lambda uids, event, **kwargs: [ok(u) for u in uids])
    mock.notify_project_channel = AsyncMock(side_effect=lambda pid, event: ok(f"channel:{pid}"))
    return mock


@pytest.fixture
def router(dispatcher, user_directory):
    return NotificationRouter(dispatcher, user_directory)


def task(**fields):
    defaults = {"id": "t-1", "title": "Write report", "assignees": ["u-alice", "u-bob"],
                "created_by": "u-alice", "project_id": "p-1"}
    defaults.update(fields)
    return TaskSnapshot(**defaults)


@pytest.mark.asyncio
async def test_created_task_notifies_assignees_and_channel(router, dispatcher):
    event = NotificationEvent(type=NotificationEventType.TASK_CREATED, task=task(), actor_id="u-alice")

    results = await router.route(event)

    recipients, assigned = dispatcher.notify_users.call_args.args
    assert recipients == ["u-bob"]
    assert assigned.type == NotificationEventType.TASK_ASSIGNED
    assert assigned.actor_name == "Alice"
    assert assigned.member_ids == ["u-bob"]

    project_id, created = dispatcher.notify_project_channel.call_args.args
    assert project_id == "p-1"
    assert created.type == NotificationEventType.TASK_CREATED
    assert [r.recipient for r in results] == ["u-bob", "channel:p-1"]


@pytest.mark.asyncio
async def test_created_task_without_project_skips_channel(router, dispatcher):
    event = NotificationEvent(type=NotificationEventType.TASK_CREATED, task=task(project_id=None))

    await router.route(event)

    dispatcher.notify_project_channel.assert_not_called()


@pytest.mark.asyncio
async def test_self_assignment_is_not_announced(router, dispatcher):
    event = NotificationEvent(
        type=NotificationEventType.TASK_ASSIGNED, task=task(), actor_id="u-alice", member_ids=["u-alice"]
    )

    assert await router.route(event) == []
    dispatcher.notify_users.assert_not_called()


@pytest.mark.asyncio
async def test_completion_notifies_creator_and_channel(router, dispatcher):
    event = NotificationEvent(type=NotificationEventType.TASK_COMPLETED, task=task(), actor_id="u-bob")

    results = await router.route(event)

    uid, named = dispatcher.notify_user.call_args.args
    assert uid == "u-alice"
    assert named.actor_name == "Bob"
    assert {r.recipient for r in results} == {"u-alice", "channel:p-1"}


@pytest.mark.asyncio
async def test_creator_completing_own_task_only_hits_channel(router, dispatcher):
    event = NotificationEvent(type=NotificationEventType.TASK_COMPLETED, task=task(), actor_id="u-alice")

    await router.route(event)

    dispatcher.notify_user.assert_not_called()
    dispatcher.notify_project_channel.assert_awaited_once()


@pytest.mark.asyncio
async def test_update_skips_editor(router, dispatcher):
    event = NotificationEvent(
        type=NotificationEventType.TASK_UPDATED, task=task(), actor_id="u-bob", changed_field_names=["title"]
    )

    await router.route(event)

    assert dispatcher.notify_users.call_args.args[0] == ["u-alice"]


@pytest.mark.asyncio
@pytest.mark.parametrize("event_type", [NotificationEventType.TASK_OVERDUE, NotificationEventType.TASK_DUE_SOON])
async def test_reminders_go_to_all_assignees(router, dispatcher, event_type):
    await router.route(NotificationEvent(type=event_type, task=task()))

    assert dispatcher.notify_users.call_args.args[0] == ["u-alice", "u-bob"]


@pytest.mark.asyncio
async def test_deletions_go_to_channel(router, dispatcher):
    await router.route(NotificationEvent(type=NotificationEventType.TASK_DELETED, task=task()))
    await router.route(NotificationEvent(type=NotificationEventType.PROJECT_DELETED, project=ProjectSnapshot(id="p-2")))

    channels = [c.args[0] for c in dispatcher.notify_project_channel.call_args_list]
    assert channels == ["p-1", "p-2"]


@pytest.mark.asyncio
async def test_project_created_notifies_creator(router, dispatcher):
    event = NotificationEvent(
        type=NotificationEventType.PROJECT_CREATED, project=ProjectSnapshot(id="p-1", created_by="u-carol")
    )

    await router.route(event)

    uid, named = dispatcher.notify_user.call_args.args
    assert uid == "u-carol"
    assert named.actor_name == "Carol"


@pytest.mark.asyncio
async def test_invite_notifies_invitees(router, dispatcher):
    event = NotificationEvent(
        type=NotificationEventType.PROJECT_INVITE, project=ProjectSnapshot(id="p-1"),
        actor_id="u-alice", member_ids=["u-bob", "u-carol"], role="editor"
    )

    await router.route(event)

    recipients, named = dispatcher.notify_users.call_args.args
    assert recipients == ["u-bob", "u-carol"]
    assert named.actor_name == "Alice"


@pytest.mark.asyncio
async def test_membership_change_posts_one_message_per_member(router, dispatcher):
    event = NotificationEvent(
        type=NotificationEventType.MEMBER_JOINED, project=ProjectSnapshot(id="p-1"), member_ids=["u-bob", "u-carol"]
    )

    results = await router.route(event)

    names = [c.args[1].actor_name for c in dispatcher.notify_project_channel.call_args_list]
    assert names == ["Bob", "Carol"]
    assert len(results) == 2
