"""Tests for the database notifier."""

from sqlmodel import select

from orchestrator.db.models import NotificationModel
from orchestrator.engine.notifications import DatabaseNotifier


async def test_notification_is_stored(session_factory):
    notifier = DatabaseNotifier(session_factory)

    await notifier.notify("tenant-a", "mgr", "Approval required", "Please review", "high", data={"instanceId": "inst_1"})
    await notifier.notify("tenant-a", None, "Nobody", "Dropped")

    async with session_factory() as session:
        rows = (await session.execute(select(NotificationModel))).scalars().all()

    assert len(rows) == 1
    assert rows[0].user_id == "mgr"
    assert rows[0].priority == "high"
    assert rows[0].data == {"instanceId": "inst_1"}
    assert rows[0].is_read is False
