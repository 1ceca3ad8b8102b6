"""
Chat Templates - Message cards for every notification type

Each template turns a NotificationEvent into a platform-agnostic
NotificationMessage (text, card with slides, one-click buttons). The
renderers in renderers.py map that onto the chat platform's JSON.
"""
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..domain.enums import NotificationEventType, TaskPriority
from ..domain.models import (
    NotificationEvent, NotificationMessage, MessageCard, MessageSlide, MessageButton,
    TaskSnapshot
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_DEEP_LINK_BASE = "tasker://"
FALLBACK_TEXT = "🔔 Notification from Tasker"

PRIORITY_ICONS = {
    TaskPriority.URGENT.value: "🔴",
    TaskPriority.HIGH.value: "🟠",
    TaskPriority.MEDIUM.value: "🟡",
    TaskPriority.LOW.value: "🟢",
}


# =============================================================================
# Helpers
# =============================================================================

def get_priority_icon(priority: Optional[str]) -> str:
    return PRIORITY_ICONS.get((priority or "").lower(), "⚪")


def get_priority_text(priority: Optional[str]) -> str:
    return (priority or "none").capitalize()


def format_date(value: Optional[datetime]) -> str:
    if value is None:
        return "No due date"
    return value.strftime("%b %d, %Y %H:%M UTC")


def _task(event: NotificationEvent) -> TaskSnapshot:
    return event.task or TaskSnapshot(id=event.subject_id or "unknown")


def _project_name(event: NotificationEvent) -> str:
    return event.project.name if event.project else "your project"


def view_task_button(task_id: str, deep_link_base: str, label: str = "👁 View Task") -> MessageButton:
    return MessageButton(
        label=label,
        action_type="open.url",
        action_payload={"web": f"{deep_link_base}task/{task_id}"}
    )


def complete_button(task_id: str, label: str = "✓ Complete") -> MessageButton:
    return MessageButton(
        label=label,
        action_type="invoke.function",
        action_payload={"name": "completeTaskFromNotification", "taskId": task_id}
    )


# =============================================================================
# Task templates
# =============================================================================

def get_task_assigned_template(event: NotificationEvent, deep_link_base: str) -> NotificationMessage:
    task = _task(event)
    slides = [
        MessageSlide(type="text", title="Description", data=task.description or "No description"),
        MessageSlide(type="label", title="Details", data=[
            {"Priority": get_priority_text(task.priority)},
            {"Due": format_date(task.due_date)},
        ]),
    ]
    if event.actor_name:
        slides.append(MessageSlide(type="text", data=f"Assigned by {event.actor_name}"))
    return NotificationMessage(
        text="📋 New task assigned to you!",
        card=MessageCard(title=f"{get_priority_icon(task.priority)} {task.title}", slides=slides),
        buttons=[view_task_button(task.id, deep_link_base), complete_button(task.id)],
    )


def get_task_created_template(event: NotificationEvent, deep_link_base: str) -> NotificationMessage:
    task = _task(event)
    return NotificationMessage(
        text="📋 New task created in project",
        card=MessageCard(
            title=f"{get_priority_icon(task.priority)} {task.title}",
            slides=[MessageSlide(type="text", data=f"Created by {event.actor_name or 'a team member'}")],
        ),
        buttons=[view_task_button(task.id, deep_link_base)],
    )


def get_task_completed_template(event: NotificationEvent, deep_link_base: str) -> NotificationMessage:
    task = _task(event)
    return NotificationMessage(
        text="✅ Task completed!",
        card=MessageCard(
            title=f"✅ {task.title}",
            slides=[MessageSlide(type="text", data=f"Completed by {event.actor_name or 'a team member'}")],
        ),
    )


def get_task_updated_template(event: NotificationEvent, deep_link_base: str) -> NotificationMessage:
    task = _task(event)
    if event.changed_field_names:
        changes = f"Updated: {', '.join(event.changed_field_names)}"
    else:
        changes = "Task was updated"
    return NotificationMessage(
        text=f"📝 Task updated: {task.title}",
        card=MessageCard(title=f"📝 {task.title}", slides=[MessageSlide(type="text", data=changes)]),
        buttons=[view_task_button(task.id, deep_link_base)],
    )


def get_task_due_soon_template(event: NotificationEvent, deep_link_base: str) -> NotificationMessage:
    task = _task(event)
    hours = event.hours_until_due if event.hours_until_due is not None else 0
    if hours <= 1:
        icon, headline = "⚠️", "Due in less than 1 hour!"
    elif hours <= 3:
        icon, headline = "⏰", f"Due in {hours} hours"
    else:
        icon, headline = "📅", f"Due in {hours} hours"
    return NotificationMessage(
        text=f"{icon} {headline}",
        card=MessageCard(
            title=f"{icon} {task.title}",
            slides=[MessageSlide(type="label", data=[{"Due": format_date(task.due_date)}])],
        ),
        buttons=[
            view_task_button(task.id, deep_link_base, label="👁 View"),
            complete_button(task.id, label="✓ Complete Now"),
            MessageButton(
                label="⏰ Snooze 1h",
                action_type="invoke.function",
                action_payload={"name": "snoozeReminder", "taskId": task.id, "hours": 1}
            ),
        ],
    )


def get_task_overdue_template(event: NotificationEvent, deep_link_base: str) -> NotificationMessage:
    task = _task(event)
    days = event.days_overdue if event.days_overdue is not None else 1
    return NotificationMessage(
        text=f"🔥 Task is {days} day(s) overdue!",
        card=MessageCard(
            title=f"🔥 OVERDUE: {task.title}",
            slides=[MessageSlide(type="label", data=[
                {"Originally Due": format_date(task.due_date)},
                {"Days Overdue": str(days)},
            ])],
        ),
        buttons=[
            complete_button(task.id, label="✓ Complete Now"),
            MessageButton(
                label="📅 Extend Deadline",
                action_type="invoke.function",
                action_payload={"name": "extendDeadline", "taskId": task.id}
            ),
        ],
    )


def get_task_deleted_template(event: NotificationEvent, deep_link_base: str) -> NotificationMessage:
    task = _task(event)
    return NotificationMessage(
        text=f"🗑️ Task deleted: {task.title}",
        card=MessageCard(
            title=f"🗑️ {task.title}",
            slides=[MessageSlide(type="text", data=f"Deleted by {event.actor_name or 'a team member'}")],
        ),
    )


# =============================================================================
# Project templates
# =============================================================================

def get_project_created_template(event: NotificationEvent, deep_link_base: str) -> NotificationMessage:
    project = event.project
    name = project.name if project else "New project"
    return NotificationMessage(
        text="📁 New project created!",
        card=MessageCard(
            title=f"📁 {name}",
            slides=[MessageSlide(type="text", data=(project.description if project else None) or "No description")],
        ),
    )


def get_project_deleted_template(event: NotificationEvent, deep_link_base: str) -> NotificationMessage:
    name = _project_name(event)
    return NotificationMessage(
        text=f"🗑️ Project deleted: {name}",
        card=MessageCard(title=f"🗑️ {name}"),
    )


def get_project_invite_template(event: NotificationEvent, deep_link_base: str) -> NotificationMessage:
    project = event.project
    project_id = project.id if project else event.subject_id
    slides: List[MessageSlide] = [
        MessageSlide(type="text", data=f"Invited by {event.actor_name or 'a team member'} as {event.role or 'member'}"),
        MessageSlide(type="text", data=(project.description if project else None) or "No description"),
    ]
    return NotificationMessage(
        text="📨 You've been invited to join a project!",
        card=MessageCard(title=f"📁 {_project_name(event)}", slides=slides),
        buttons=[
            MessageButton(
                label="✓ Accept",
                action_type="invoke.function",
                action_payload={"name": "acceptProjectInvite", "projectId": project_id}
            ),
            MessageButton(
                label="✗ Decline",
                action_type="invoke.function",
                action_payload={"name": "declineProjectInvite", "projectId": project_id}
            ),
        ],
    )


def get_member_joined_template(event: NotificationEvent, deep_link_base: str) -> NotificationMessage:
    who = event.actor_name or "A new member"
    return NotificationMessage(
        text=f"👋 New member joined {_project_name(event)}",
        card=MessageCard(
            title=f"👋 {who} joined",
            slides=[MessageSlide(type="text", data=f"Joined as {event.role or 'member'}")],
        ),
    )


def get_member_left_template(event: NotificationEvent, deep_link_base: str) -> NotificationMessage:
    who = event.actor_name or "A member"
    return NotificationMessage(
        text=f"👋 Member left {_project_name(event)}",
        card=MessageCard(title=f"👋 {who} left"),
    )


# =============================================================================
# Template Registry
# =============================================================================

TemplateFunc = Callable[[NotificationEvent, str], NotificationMessage]

TEMPLATE_REGISTRY: Dict[NotificationEventType, TemplateFunc] = {
    NotificationEventType.TASK_ASSIGNED: get_task_assigned_template,
    NotificationEventType.TASK_CREATED: get_task_created_template,
    NotificationEventType.TASK_COMPLETED: get_task_completed_template,
    NotificationEventType.TASK_UPDATED: get_task_updated_template,
    NotificationEventType.TASK_DUE_SOON: get_task_due_soon_template,
    NotificationEventType.TASK_OVERDUE: get_task_overdue_template,
    NotificationEventType.TASK_DELETED: get_task_deleted_template,
    NotificationEventType.PROJECT_CREATED: get_project_created_template,
    NotificationEventType.PROJECT_DELETED: get_project_deleted_template,
    NotificationEventType.PROJECT_INVITE: get_project_invite_template,
    NotificationEventType.MEMBER_JOINED: get_member_joined_template,
    NotificationEventType.MEMBER_LEFT: get_member_left_template,
}


def format_notification(
    event: NotificationEvent,
    deep_link_base: str = DEFAULT_DEEP_LINK_BASE
) -> NotificationMessage:
    """
    Render an event into a message.

    Args:
        event: The notification event
        deep_link_base: Scheme/prefix used for "open in app" buttons

    Returns:
        NotificationMessage; unknown types get the generic fallback text
    """
    template_func = TEMPLATE_REGISTRY.get(event.type)
    if template_func is None:
        logger.warning(f"Unknown notification type: {event.type}", extra={"event_type": str(event.type)})
        return NotificationMessage(text=FALLBACK_TEXT)
    return template_func(event, deep_link_base)
