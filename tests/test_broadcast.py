from datetime import UTC, datetime

import pytest

from lanshare.models import FileRecord
from lanshare.services.broadcast import BroadcastChannel, FileRemoved, FilesAdded


def make_record(stored_name: str) -> FileRecord:
    return FileRecord(
        id="abc123",
        original_name="a.txt",
        stored_name=stored_name,
        size=2,
        content_type="text/plain",
        uploaded_at=datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC),
    )


@pytest.mark.asyncio
async def test_events_arrive_in_publish_order():
    channel = BroadcastChannel()
    subscription = channel.subscribe()

    channel.publish(FilesAdded((make_record("1-a.txt"),)))
    channel.publish(FileRemoved("1-a.txt"))
    channel.publish(FilesAdded((make_record("2-a.txt"),)))

    first = await subscription.next_event()
    second = await subscription.next_event()
    third = await subscription.next_event()
    assert isinstance(first, FilesAdded)
    assert second == FileRemoved("1-a.txt")
    assert third.records[0].stored_name == "2-a.txt"


@pytest.mark.asyncio
async def test_every_subscriber_gets_each_event():
    channel = BroadcastChannel()
    subscriptions = [channel.subscribe() for _ in range(3)]

    assert channel.publish(FileRemoved("1-a.txt")) == 3
    for subscription in subscriptions:
        assert await subscription.next_event() == FileRemoved("1-a.txt")


def test_late_subscriber_gets_no_replay():
    channel = BroadcastChannel()
    channel.publish(FileRemoved("1-a.txt"))

    late = channel.subscribe()

    assert late.pending() == 0


def test_unsubscribe_is_idempotent_and_stops_delivery():
    channel = BroadcastChannel()
    subscription = channel.subscribe()

    channel.unsubscribe(subscription)
    channel.unsubscribe(subscription)
    channel.publish(FileRemoved("1-a.txt"))

    assert channel.subscriber_count == 0
    assert subscription.pending() == 0


def test_full_queue_drops_event_without_blocking_others():
    channel = BroadcastChannel(queue_size=1)
    slow = channel.subscribe()
    channel.publish(FileRemoved("1-a.txt"))
    fast = channel.subscribe()

    delivered = channel.publish(FileRemoved("2-b.txt"))

    assert delivered == 1
    assert slow.pending() == 1
    assert fast.pending() == 1


def test_messages_use_wire_event_names():
    added = FilesAdded((make_record("1-a.txt"),)).to_message()
    removed = FileRemoved("1-a.txt").to_message()

    assert added["event"] == "fileUploaded"
    assert added["data"] == [
        {
            "id": "abc123",
            "originalName": "a.txt",
            "filename": "1-a.txt",
            "size": 2,
            "mimetype": "text/plain",
            "uploadTime": "2026-01-02T03:04:05Z",
        }
    ]
    assert removed == {"event": "fileDeleted", "data": "1-a.txt"}
