import asyncio
import copy

import pytest

from tracker_client.api import ApiError
from tracker_client.cache import QueryCache
from tracker_client.mutation import (
    CreateMutation, DeleteMutation, Messages, MutationState, UpdateMutation, is_temp_id, temp_id,
)
from tracker_client.view import DetailView, Notifier

REGION = ("/api/organizations", "o1", "academic-logs")
A = {"id": "a", "notes": "Reading age 9", "grade": "B"}
B = {"id": "b", "notes": "Times tables", "grade": "C"}


def ids(items):
    return [r["id"] for r in items]


def setup(items):
    cache = QueryCache()
    cache.set(REGION, copy.deepcopy(items))
    return cache, DetailView(), Notifier()


def failing(error=None):
    async def send(variables):
        raise error or ApiError(500, "Internal server error")
    return send


def returning(data):
    async def send(variables):
        return data
    return send


def test_temp_ids_are_unique_and_recognisable():
    first, second = temp_id(), temp_id()
    assert first != second
    assert is_temp_id(first) and not is_temp_id("srv-42")


def test_create_then_server_failure_restores_region():
    cache, view, notifier = setup([A, B])
    seen = {}

    async def send(variables):
        seen["region"] = cache.get(REGION)
        seen["dialog_open"] = view.dialog_open
        raise ApiError(500, "Internal server error")

    view.dialog_open = True
    m = CreateMutation(cache, REGION, send, view=view, notifier=notifier)
    out = asyncio.run(m.run({"notes": "Spelling test"}))

    assert ids(seen["region"])[1:] == ["a", "b"]
    assert is_temp_id(seen["region"][0]["id"])
    assert seen["region"][0]["notes"] == "Spelling test"
    assert seen["dialog_open"] is False

    assert out.state is MutationState.ROLLED_BACK
    assert isinstance(out.error, ApiError)
    assert cache.get(REGION) == [A, B]
    assert len(notifier.failures()) == 1
    assert view.dialog_open is True
    assert m.state is MutationState.IDLE
    assert cache.is_stale(REGION)


def test_delete_then_success_closes_view_and_invalidates():
    fetched = []

    async def fetcher(key):
        fetched.append(key)
        return [dict(A)]

    cache = QueryCache(fetcher=fetcher)
    cache.set(REGION, [dict(A), dict(B)])
    view, notifier = DetailView(), Notifier()
    view.open(B)
    seen = {}

    async def send(record_id):
        seen["region"] = ids(cache.get(REGION))
        seen["view_open"] = view.is_open
        return {"success": True}

    async def scenario():
        out = await DeleteMutation(cache, REGION, send, view=view, notifier=notifier).run("b")
        assert cache.get(REGION) == [A]
        await cache.drain()
        return out

    out = asyncio.run(scenario())
    assert seen == {"region": ["a"], "view_open": False}
    assert out.ok
    assert view.selected is None
    assert cache.get(REGION) == [A]
    assert fetched == [REGION]
    assert notifier.failures() == []


def test_delete_failure_does_not_reopen_view():
    cache, view, notifier = setup([A, B])
    view.open(B)
    asyncio.run(DeleteMutation(cache, REGION, failing(), view=view, notifier=notifier).run("b"))
    assert cache.get(REGION) == [A, B]
    assert view.is_open is False
    assert notifier.last.variant == "destructive"


def test_reconciled_create_leaves_only_server_record():
    cache, view, notifier = setup([A])

    async def send(variables):
        # the user opens the placeholder while the request is in flight
        view.open(cache.get(REGION)[0])
        return {**variables, "id": "srv-42"}

    out = asyncio.run(CreateMutation(cache, REGION, send, view=view, notifier=notifier).run({"notes": "New"}))
    assert out.ok
    assert ids(cache.get(REGION)) == ["srv-42", "a"]
    assert not any(is_temp_id(r["id"]) for r in cache.get(REGION))
    assert view.selected["id"] == "srv-42"
    assert notifier.last.variant == "default"


def test_reconcile_after_refetch_already_brought_record():
    cache, view, notifier = setup([A])
    server = {"id": "srv-42", "notes": "New"}

    async def send(variables):
        cache.set(REGION, lambda current: current + [dict(server)])
        return server

    asyncio.run(CreateMutation(cache, REGION, send).run({"notes": "New"}))
    assert ids(cache.get(REGION)) == ["srv-42", "a"]


def test_create_decorate_shapes_placeholder():
    cache, _, _ = setup([])
    seen = {}

    async def send(variables):
        seen["placeholder"] = cache.get(REGION)[0]
        return {"id": "srv-1"}

    m = CreateMutation(cache, REGION, send, decorate=lambda e: {**e, "category": {"name": "Good"}})
    asyncio.run(m.run({"notes": "n"}))
    assert seen["placeholder"]["category"] == {"name": "Good"}


def test_update_success_merges_server_record():
    cache, view, notifier = setup([A, B])
    view.open(A)
    seen = {}

    async def send(variables):
        seen["region"] = copy.deepcopy(cache.get(REGION))
        seen["view"] = dict(view.selected)
        return {**A, "grade": "A", "updated_at": "2025-03-01T10:00:00Z"}

    m = UpdateMutation(cache, REGION, send, view=view, notifier=notifier)
    out = asyncio.run(m.run({"id": "a", "updates": {"grade": "A"}}))

    assert seen["region"][0]["grade"] == "A"
    assert seen["view"]["grade"] == "A"
    assert out.ok
    assert cache.get(REGION)[0]["updated_at"] == "2025-03-01T10:00:00Z"
    assert cache.get(REGION)[1] == B
    assert view.selected["updated_at"] == "2025-03-01T10:00:00Z"


def test_update_rollback_is_exact():
    s0 = [A, B]
    cache, view, notifier = setup(s0)
    view.open(A)
    out = asyncio.run(UpdateMutation(cache, REGION, failing(), view=view, notifier=notifier)
                      .run({"id": "a", "updates": {"grade": "A", "notes": "changed"}}))
    assert out.state is MutationState.ROLLED_BACK
    assert cache.get(REGION) == s0
    assert view.selected == A


def test_unparsable_success_body_rolls_back():
    cache, view, notifier = setup([A])
    err = ApiError(200, "Could not parse server response")
    out = asyncio.run(CreateMutation(cache, REGION, failing(err), notifier=notifier).run({"notes": "n"}))
    assert out.state is MutationState.ROLLED_BACK
    assert cache.get(REGION) == [A]


def test_unexpected_exception_rolls_back():
    cache, _, notifier = setup([A])
    out = asyncio.run(DeleteMutation(cache, REGION, failing(ValueError("bad json")), notifier=notifier).run("a"))
    assert out.state is MutationState.ROLLED_BACK
    assert cache.get(REGION) == [A]


def test_unmounted_view_is_left_alone_but_cache_settles():
    cache, view, notifier = setup([A, B])

    async def send(variables):
        view.unmount()
        raise ApiError(0, "Network error: connection refused")

    view.dialog_open = True
    m = CreateMutation(cache, REGION, send, view=view, notifier=notifier)
    asyncio.run(m.run({"notes": "n"}))
    assert view.dialog_open is False
    assert cache.get(REGION) == [A, B]
    assert len(notifier.failures()) == 1


def test_custom_messages():
    cache, _, notifier = setup([A])
    msgs = Messages(success_title="Academic log deleted", failure_title="Failed to delete academic log")
    asyncio.run(DeleteMutation(cache, REGION, returning({"success": True}), notifier=notifier, messages=msgs).run("a"))
    assert notifier.last.title == "Academic log deleted"


def test_state_is_pending_while_in_flight():
    cache, _, _ = setup([A])
    seen = {}

    async def send(variables):
        seen["state"] = m.state
        return {"id": "srv"}

    m = CreateMutation(cache, REGION, send)
    asyncio.run(m.run({"notes": "n"}))
    assert seen["state"] is MutationState.PENDING
    assert m.state is MutationState.IDLE


def test_related_regions_invalidated_on_settle():
    other = ("/api/organizations", "o1", "students", "s1", "academic-logs")
    cache, _, _ = setup([A])
    cache.set(other, [])
    m = CreateMutation(cache, REGION, returning({"id": "srv", "student_id": "s1"}),
                       related=lambda variables, record: [other] if record else [])
    asyncio.run(m.run({"student_id": "s1", "notes": "n"}))
    assert cache.is_stale(other)


def test_overlapping_mutations_later_settle_wins():
    cache, _, _ = setup([A, B])

    async def scenario():
        first_go, second_go = asyncio.Event(), asyncio.Event()

        async def slow_fail(variables):
            await first_go.wait()
            raise ApiError(500, "boom")

        async def slow_ok(variables):
            await second_go.wait()
            return {"id": "srv-2", "notes": "second"}

        first = asyncio.ensure_future(CreateMutation(cache, REGION, slow_fail).run({"notes": "first"}))
        await asyncio.sleep(0)
        second = asyncio.ensure_future(CreateMutation(cache, REGION, slow_ok).run({"notes": "second"}))
        await asyncio.sleep(0)
        assert len(cache.get(REGION)) == 4

        first_go.set()
        await first
        # the first rollback restores its own snapshot, dropping the second placeholder
        assert cache.get(REGION) == [A, B]

        second_go.set()
        await second

    asyncio.run(scenario())
    assert ids(cache.get(REGION)) == ["srv-2", "a", "b"]


def test_cancelled_send_restores_and_propagates():
    cache, _, _ = setup([A])

    async def scenario():
        async def hang(variables):
            await asyncio.Event().wait()

        m = CreateMutation(cache, REGION, hang)
        task = asyncio.ensure_future(m.run({"notes": "n"}))
        await asyncio.sleep(0)
        assert len(cache.get(REGION)) == 2
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return m

    m = asyncio.run(scenario())
    assert cache.get(REGION) == [A]
    assert m.state is MutationState.IDLE
