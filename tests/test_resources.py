import asyncio

from tracker_client.api import ApiError
from tracker_client.cache import QueryCache
from tracker_client.resources import ResourceMutations, region_key, student_region_key
from tracker_client.view import DetailView, Notifier

LOG = {"id": "l1", "student_id": "s1", "notes": "Calm in assembly"}


class FakeApi:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def request(self, method, path, data=None):
        self.calls.append((method, path, data))
        if self.error is not None:
            raise self.error
        return self.result

    async def fetch(self, key):
        return self.result


def setup(api):
    cache = QueryCache()
    cache.set(region_key("o1", "behavior-logs"), [dict(LOG)])
    cache.set(student_region_key("o1", "s1", "behavior-logs"), [dict(LOG)])
    view, notifier = DetailView(), Notifier()
    res = ResourceMutations(api, cache, "o1", "behavior-logs", view, notifier, label="Behavior log")
    return res, cache, view, notifier


def test_create_posts_to_resource_and_invalidates_student_region():
    api = FakeApi(result={"id": "l2", "student_id": "s1", "notes": "Tidied up"})
    res, cache, _, notifier = setup(api)
    out = asyncio.run(res.create().run({"student_id": "s1", "notes": "Tidied up"}))

    assert out.ok
    assert api.calls == [("POST", "/api/organizations/o1/behavior-logs", {"student_id": "s1", "notes": "Tidied up"})]
    assert [r["id"] for r in cache.get(res.region)] == ["l2", "l1"]
    assert cache.is_stale(student_region_key("o1", "s1", "behavior-logs"))
    assert notifier.last.title == "Behavior log created"


def test_update_patches_record():
    api = FakeApi(result={**LOG, "notes": "Very calm"})
    res, cache, _, notifier = setup(api)
    asyncio.run(res.update().run({"id": "l1", "updates": {"notes": "Very calm"}}))
    assert api.calls == [("PATCH", "/api/organizations/o1/behavior-logs/l1", {"notes": "Very calm"})]
    assert cache.get(res.region)[0]["notes"] == "Very calm"
    assert notifier.last.title == "Behavior log updated"


def test_failed_delete_uses_snapshot_record_for_student_region():
    api = FakeApi(error=ApiError(500, "Internal server error"))
    res, cache, view, notifier = setup(api)
    view.open(LOG)
    out = asyncio.run(res.delete().run("l1"))

    assert not out.ok
    assert api.calls == [("DELETE", "/api/organizations/o1/behavior-logs/l1", None)]
    assert cache.get(res.region) == [LOG]
    assert cache.is_stale(student_region_key("o1", "s1", "behavior-logs"))
    assert notifier.last.title == "Failed to delete behavior log"
    assert notifier.last.variant == "destructive"
    assert view.is_open is False


def test_record_without_student_touches_only_region():
    res, _, _, _ = setup(FakeApi())
    assert list(res.related(None, {"id": "c1"})) == []
    assert list(res.related({"student_id": "s2"}, None)) == [student_region_key("o1", "s2", "behavior-logs")]


def test_default_labels():
    cache = QueryCache()
    assert ResourceMutations(FakeApi(), cache, "o1", "classes").label == "Class"
    assert ResourceMutations(FakeApi(), cache, "o1", "follow-ups").label == "Follow up"
    assert ResourceMutations(FakeApi(), cache, "o1", "academic-logs").label == "Academic log"
    assert ResourceMutations(FakeApi(), cache, "o1", "behavior-log-categories").label == "Behavior log category"


def test_load_fills_region():
    api = FakeApi(result=[{"id": "x"}])
    res, cache, _, _ = setup(api)
    assert asyncio.run(res.load()) == [{"id": "x"}]
    assert cache.get(res.region) == [{"id": "x"}]
