"""Result-published notices shown to every viewer."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable

from .store import DocumentStore
from .types import Notification, Program


class NotificationCenter:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def result_published(self, result_id: str, program: Program, now: datetime) -> Notification:
        notification = Notification(
            id=str(uuid.uuid4()),
            kind="result_published",
            title="Result Published",
            message=f"Results for {program.name} have been published!",
            program_id=program.id,
            result_id=result_id,
            created_at=now,
        )
        self.store.add_notification(notification)
        return notification

    def list_notifications(self, *, unread_only: bool = False) -> list[Notification]:
        items = self.store.list_notifications()
        if unread_only:
            return [n for n in items if not n.read]
        return items

    def mark_read(self, notification_ids: Iterable[str]) -> int:
        return self.store.mark_notifications_read(notification_ids)

    def mark_all_read(self) -> int:
        return self.store.mark_notifications_read(None)
