# tracker_client/resources.py - optimistic mutations for one organization-scoped resource
from typing import Any, Dict, Iterable, List, Optional

from tracker_client.api import ApiClient
from tracker_client.cache import Key, QueryCache
from tracker_client.mutation import CreateMutation, DeleteMutation, Messages, UpdateMutation
from tracker_client.view import DetailView, Notifier

API_ROOT = "/api/organizations"


def _singular(resource: str) -> str:
    if resource.endswith("sses"):
        return resource[:-2]
    if resource.endswith("ies"):
        return resource[:-3] + "y"
    return resource[:-1] if resource.endswith("s") else resource


def region_key(org_id: str, resource: str) -> Key:
    return (API_ROOT, org_id, resource)


def student_region_key(org_id: str, student_id: str, resource: str) -> Key:
    return (API_ROOT, org_id, "students", student_id, resource)


class ResourceMutations:
    """
    Builds create / update / delete mutations for e.g. the "academic-logs"
    of one organization. All three share the page's view and notifier.
    """

    def __init__(self, api: ApiClient, cache: QueryCache, org_id: str, resource: str,
                 view: Optional[DetailView] = None, notifier: Optional[Notifier] = None,
                 label: Optional[str] = None):
        self.api = api
        self.cache = cache
        self.org_id = org_id
        self.resource = resource
        self.view = view
        self.notifier = notifier
        self.label = label or _singular(resource).replace("-", " ").capitalize()

    @property
    def region(self) -> Key:
        return region_key(self.org_id, self.resource)

    @property
    def path(self) -> str:
        return f"{API_ROOT}/{self.org_id}/{self.resource}"

    def related(self, variables: Any, record: Optional[Dict[str, Any]]) -> Iterable[Key]:
        student_id = None
        if isinstance(record, dict):
            student_id = record.get("student_id")
        if student_id is None and isinstance(variables, dict):
            student_id = variables.get("student_id")
        if student_id is None:
            return []
        return [student_region_key(self.org_id, student_id, self.resource)]

    def _messages(self, verb: str) -> Messages:
        noun = self.label.lower()
        return Messages(
            success_title=f"{self.label} {verb}d",
            success_description=f"The {noun} has been {verb}d successfully.",
            failure_title=f"Failed to {verb} {noun}",
            failure_description=f"Could not {verb} the {noun}. Please try again.",
        )

    def _common(self, verb: str) -> Dict[str, Any]:
        return dict(view=self.view, notifier=self.notifier,
                    messages=self._messages(verb), related=self.related)

    def create(self, decorate=None) -> CreateMutation:
        async def send(payload):
            return await self.api.request("POST", self.path, payload)

        return CreateMutation(self.cache, self.region, send, decorate=decorate, **self._common("create"))

    def update(self) -> UpdateMutation:
        async def send(variables):
            return await self.api.request("PATCH", f"{self.path}/{variables['id']}", variables["updates"])

        return UpdateMutation(self.cache, self.region, send, **self._common("update"))

    def delete(self) -> DeleteMutation:
        async def send(record_id):
            return await self.api.request("DELETE", f"{self.path}/{record_id}")

        return DeleteMutation(self.cache, self.region, send, **self._common("delete"))

    async def load(self) -> List[Dict[str, Any]]:
        """Fetch the region into the cache (the list query of the page)."""
        items = await self.api.fetch(self.region)
        self.cache.set(self.region, items)
        return items
