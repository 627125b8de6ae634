from datetime import date

import pytest
from fastapi import BackgroundTasks
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import NotFoundError
from app.services.leave_lifecycle import LeaveLifecycleService
from app.services.notification import NEW_REQUEST, NotificationService, send_leave_notification
from tests.conftest import TODAY


@pytest.fixture
def notifications(db_session):
    return NotificationService(db_session)


def test_inbox_filters_and_counts(notifications, employee_user, manager_user):
    notifications.notify(employee_user.id, None, "Welcome", "Hello")
    notifications.notify(employee_user.id, None, "Leave request approved", "Your leave was approved", "approved")
    notifications.notify(manager_user.id, None, "Other inbox", "Not yours")

    assert len(notifications.list_for_user(employee_user.id)) == 2
    assert [n.type for n in notifications.list_for_user(employee_user.id, type="approved")] == ["approved"]
    assert notifications.unread_count(employee_user.id) == 2

def test_newest_first_with_paging(notifications, employee_user):
    for i in range(3):
        notifications.notify(employee_user.id, None, f"n{i}", "body")
    titles = [n.title for n in notifications.list_for_user(employee_user.id, skip=1, limit=1)]
    assert titles == ["n1"]

def test_mark_read_is_scoped_to_owner(notifications, employee_user, manager_user):
    notification = notifications.notify(employee_user.id, None, "Title", "Body")

    with pytest.raises(NotFoundError):
        notifications.mark_read(notification.id, manager_user.id)

    updated = notifications.mark_read(notification.id, employee_user.id)
    assert updated.is_read is True
    assert notifications.unread_count(employee_user.id) == 0
    assert notifications.list_for_user(employee_user.id, unread_only=True) == []

def test_mark_all_read(notifications, employee_user, manager_user):
    notifications.notify(employee_user.id, None, "a", "a")
    notifications.notify(employee_user.id, None, "b", "b")
    notifications.notify(manager_user.id, None, "c", "c")

    assert notifications.mark_all_read(employee_user.id) == 2
    assert notifications.mark_all_read(employee_user.id) == 0
    assert notifications.unread_count(manager_user.id) == 1

def test_owner_cancellation_notifies_the_approver(lifecycle, notifications, employee_user, manager_user):
    request = lifecycle.submit(employee_user.id, "vacation", date(2025, 9, 1), date(2025, 9, 2))
    lifecycle.cancel(request.id, employee_user)

    inbox = notifications.list_for_user(manager_user.id)
    assert [n.type for n in inbox] == ["cancelled", "request_submitted"]
    assert notifications.list_for_user(employee_user.id) == []

def test_background_delivery_runs_after_commit_in_its_own_session(engine, db_session, notifications, leave_types, admin_user, employee_user, manager_user):
    tasks = BackgroundTasks()
    factory = sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)
    lifecycle = LeaveLifecycleService(db_session, today=lambda: TODAY, background_tasks=tasks, session_factory=factory)

    request = lifecycle.submit(employee_user.id, "vacation", date(2025, 9, 1), date(2025, 9, 2))

    # Queued, not delivered, when the request transaction commits
    assert request.status == "pending"
    assert notifications.unread_count(manager_user.id) == 0
    assert len(tasks.tasks) == 1
    assert tasks.tasks[0].func is send_leave_notification

    for task in tasks.tasks:
        task.func(*task.args, **task.kwargs)

    assert [n.type for n in notifications.list_for_user(manager_user.id)] == ["request_submitted"]

def test_background_delivery_skips_missing_rows(engine, notifications, employee_user, manager_user):
    factory = sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)
    send_leave_notification(factory, NEW_REQUEST, 9999, employee_user.id)

    assert notifications.unread_count(manager_user.id) == 0
