"""Expiry sweep tests."""

import asyncio
from datetime import timedelta

from copypasta.errors import StorageError
from copypasta.models import NoteCreate
from copypasta.services.expiry import ExpirySweeper, sweep_expired


def test_everything_expires_after_fifteen_days(service, clock):
    service.insert_note(NoteCreate(content="note A"))
    service.insert_note(NoteCreate(content="note B"))

    clock.advance(days=15)
    result = service.clean_expired()

    assert result.removed == 2
    assert result.failed == 0
    assert service.list() == []


def test_only_expired_items_are_removed(service, clock):
    short = service.insert_note(NoteCreate(content="short", expires_at=clock.now + timedelta(hours=1)))
    keep = service.insert_note(NoteCreate(content="keep"))

    clock.advance(hours=2)
    result = service.clean_expired()

    remaining = service.list()
    assert result.removed == 1
    assert [i.id for i in remaining] == [keep.id]
    assert remaining[0].content == "keep"
    assert short.id not in [i.id for i in remaining]


def test_nothing_expires_early(service, clock):
    service.insert_note(NoteCreate(content="fresh"))

    clock.advance(days=13)

    assert service.clean_expired().removed == 0
    assert len(service.list()) == 1


def test_sweep_continues_past_failures(store, service, clock, monkeypatch):
    first = service.insert_note(NoteCreate(content="first"))
    service.insert_note(NoteCreate(content="second"))
    clock.advance(days=15)

    original_remove = store.remove

    def flaky_remove(item_id):
        if item_id == first.id:
            raise StorageError("disk error")
        return original_remove(item_id)

    monkeypatch.setattr(store, "remove", flaky_remove)

    result = sweep_expired(store)

    assert result.removed == 1
    assert result.failed == 1
    assert [i.id for i in store.list()] == [first.id]


def test_sweep_accepts_explicit_time(store, service, clock):
    service.insert_note(NoteCreate(content="later"))

    assert sweep_expired(store, now=clock.now + timedelta(days=20)).removed == 1


def test_sweeper_runs_on_start_and_stops(service, clock):
    service.insert_note(NoteCreate(content="stale"))
    clock.advance(days=15)

    async def scenario():
        sweeper = ExpirySweeper(service.clean_expired, interval_minutes=60)
        sweeper.start()
        for _ in range(200):
            if not service.list():
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()
        return sweeper.running

    assert asyncio.run(scenario()) is False
    assert service.list() == []


def test_sweeper_survives_failed_round(service):
    calls = []

    def failing_sweep():
        calls.append(1)
        raise RuntimeError("boom")

    async def scenario():
        sweeper = ExpirySweeper(failing_sweep, interval_minutes=0.0001)
        sweeper.start()
        for _ in range(200):
            if len(calls) >= 2:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

    asyncio.run(scenario())

    assert len(calls) >= 2
