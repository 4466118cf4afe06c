# Overview: Notification sink; stores human-readable alerts and pushes them to subscribers.

from __future__ import annotations

from typing import Callable

from flask import current_app
from sqlalchemy import event, or_
from sqlalchemy.orm import Session

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Notification
from ..models.communications import NOTIFICATION_TYPES
from ..time_utils import utcnow


_PENDING_KEY = "stockroom_pending_notifications"

_subscribers: list[Callable[[dict], None]] = []


def subscribe(callback: Callable[[dict], None]) -> Callable[[], None]:
    """
    Register a callback invoked with each notification dict after the
    transaction that raised it commits. Returns an unsubscribe function.
    """
    _subscribers.append(callback)

    def _unsubscribe():
        unsubscribe(callback)

    return _unsubscribe


def unsubscribe(callback: Callable[[dict], None]) -> None:
    if callback in _subscribers:
        _subscribers.remove(callback)


def _publish(payload: dict) -> None:
    for callback in list(_subscribers):
        try:
            callback(payload)
        except Exception:
            # Sink is fire-and-forget: a broken subscriber must not undo the write.
            current_app.logger.exception("Notification subscriber %r failed", callback)


@event.listens_for(Session, "after_commit")
def _deliver_after_commit(session):
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    for payload in pending:
        _publish(payload)


@event.listens_for(Session, "after_rollback")
def _drop_after_rollback(session):
    session.info.pop(_PENDING_KEY, None)


def add_alert(type: str, title: str, message: str, *, store_id: int | None = None, commit: bool = False) -> Notification:
    """
    Raise a notification.

    The row joins the caller's transaction; subscribers hear about it once
    that transaction commits and never if it rolls back.
    """
    if type not in NOTIFICATION_TYPES:
        raise ValidationError(f"Unknown notification type: {type!r}")
    if not title or not message:
        raise ValidationError("title and message are required")

    notification = Notification(
        type=type,
        title=title,
        message=message,
        store_id=store_id,
        is_read=False,
        created_at=utcnow(),
    )
    db.session.add(notification)
    db.session.flush()
    # Snapshot now: attributes are expired (and unloadable) inside after_commit.
    db.session.info.setdefault(_PENDING_KEY, []).append(notification.to_dict())

    if commit:
        db.session.commit()
    return notification


def list_notifications(
    *,
    store_ids: set[int] | None = None,
    since_id: int | None = None,
    unread_only: bool = False,
    limit: int = 100,
) -> list[Notification]:
    """
    Read stored notifications, newest first.

    store_ids restricts to those stores plus store-less notifications;
    since_id supports incremental polling.
    """
    q = db.session.query(Notification)
    if store_ids is not None:
        q = q.filter(
            or_(Notification.store_id.is_(None), Notification.store_id.in_(sorted(store_ids)))
        )
    if since_id is not None:
        q = q.filter(Notification.id > since_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.id.desc()).limit(limit).all()


def get_notification(notification_id: int) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError(f"Notification {notification_id} not found")
    return notification


def mark_read(notification_id: int) -> Notification:
    notification = get_notification(notification_id)
    notification.is_read = True
    db.session.commit()
    return notification
