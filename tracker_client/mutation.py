# tracker_client/mutation.py - optimistic create / update / delete against a cached region
"""
Optimistic mutations.

A mutation speculatively rewrites one cache region, awaits the server once,
and then either reconciles the region with the server's record or restores
the snapshot taken before the speculative write. Either way the region (and
any related regions) is invalidated on settle so a background refetch picks
up out-of-band changes.

    IDLE -> PENDING -> RECONCILED -> IDLE
                    \-> ROLLED_BACK -> IDLE

Overlapping mutations on one region are not coordinated beyond snapshot
order: each captures the region as the previous one left it, and the later
settle wins.
"""
import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from tracker_client.api import ApiError
from tracker_client.cache import Key, QueryCache
from tracker_client.view import DetailView, Notifier

logger = logging.getLogger(__name__)

Send = Callable[[Any], Awaitable[Any]]

_temp_seq = itertools.count(1)


def temp_id() -> str:
    return f"temp-{int(time.time() * 1000)}-{next(_temp_seq)}"


def is_temp_id(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("temp-")


class MutationState(Enum):
    IDLE = "idle"
    PENDING = "pending"
    RECONCILED = "reconciled"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class MutationOutcome:
    state: MutationState
    data: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.state is MutationState.RECONCILED


@dataclass(frozen=True)
class Messages:
    success_title: str = "Saved"
    success_description: str = "Changes saved successfully."
    failure_title: str = "Something went wrong"
    failure_description: str = "Could not save changes. Please try again."


class OptimisticMutation:
    """
    Base protocol; subclasses say how the speculative write, the
    reconciliation and the view updates look for their kind of change.

    `related(variables, record)` may name extra regions to invalidate on
    settle (e.g. a student's own log list).
    """

    kind = "mutation"

    def __init__(self, cache: QueryCache, region: Key, send: Send,
                 view: Optional[DetailView] = None, notifier: Optional[Notifier] = None,
                 messages: Optional[Messages] = None,
                 related: Optional[Callable[[Any, Optional[Dict[str, Any]]], Iterable[Key]]] = None):
        self.cache = cache
        self.region = tuple(region)
        self.send = send
        self.view = view
        self.notifier = notifier
        self.messages = messages or Messages()
        self.related = related
        self.state = MutationState.IDLE
        self.in_flight = 0

    # --- hooks ---
    def prepare(self, variables: Any) -> Dict[str, Any]:
        return {}

    def apply(self, current: Any, variables: Any, ctx: Dict[str, Any]) -> Any:
        return current

    def reconcile(self, current: Any, data: Any, variables: Any, ctx: Dict[str, Any]) -> Any:
        return current

    def view_pending(self, view: DetailView, variables: Any, ctx: Dict[str, Any]) -> None:
        pass

    def view_reconciled(self, view: DetailView, data: Any, variables: Any, ctx: Dict[str, Any]) -> None:
        pass

    def view_rolled_back(self, view: DetailView, variables: Any, ctx: Dict[str, Any]) -> None:
        pass

    # --- protocol ---
    def _view_live(self) -> bool:
        return self.view is not None and self.view.mounted

    def _notify(self, title: str, description: str, variant: str = "default") -> None:
        if self.notifier is not None:
            self.notifier.notify(title, description, variant)

    async def run(self, variables: Any) -> MutationOutcome:
        # Idle -> Pending: everything up to the await runs without interleaving
        ctx = self.prepare(variables)
        snap = self.cache.snapshot(self.region)
        ctx.setdefault("record", _find(snap.value if snap.existed else None, ctx.get("id")))
        self.cache.set(self.region, lambda current: self.apply(current, variables, ctx))
        self.state = MutationState.PENDING
        self.in_flight += 1
        if self._view_live():
            self.view_pending(self.view, variables, ctx)

        try:
            data = await self.send(variables)
        except asyncio.CancelledError:
            self.cache.restore(snap)
            self.in_flight -= 1
            if self.in_flight == 0:
                self.state = MutationState.IDLE
            raise
        except Exception as e:
            outcome = self._roll_back(snap, variables, ctx, e)
        else:
            outcome = self._reconcile(data, variables, ctx)

        self._settle(variables, ctx, outcome)
        return outcome

    def _reconcile(self, data: Any, variables: Any, ctx: Dict[str, Any]) -> MutationOutcome:
        self.cache.set(self.region, lambda current: self.reconcile(current, data, variables, ctx))
        self.state = MutationState.RECONCILED
        if self._view_live():
            self.view_reconciled(self.view, data, variables, ctx)
        self._notify(self.messages.success_title, self.messages.success_description)
        return MutationOutcome(MutationState.RECONCILED, data=data)

    def _roll_back(self, snap, variables: Any, ctx: Dict[str, Any], error: Exception) -> MutationOutcome:
        self.cache.restore(snap)
        self.state = MutationState.ROLLED_BACK
        if isinstance(error, ApiError):
            logger.warning("%s on %s rolled back: %s", self.kind, self.region, error.message)
        else:
            logger.warning("%s on %s rolled back", self.kind, self.region, exc_info=error)
        if self._view_live():
            self.view_rolled_back(self.view, variables, ctx)
        self._notify(self.messages.failure_title, self.messages.failure_description, "destructive")
        return MutationOutcome(MutationState.ROLLED_BACK, error=error)

    def _settle(self, variables: Any, ctx: Dict[str, Any], outcome: MutationOutcome) -> None:
        self.cache.invalidate(self.region)
        if self.related is not None:
            record = outcome.data if isinstance(outcome.data, dict) else ctx.get("record")
            for key in self.related(variables, record):
                self.cache.invalidate(key)
        self.in_flight -= 1
        if self.in_flight == 0:
            self.state = MutationState.IDLE


def _find(items: Any, record_id: Any) -> Optional[Dict[str, Any]]:
    if record_id is None or not isinstance(items, list):
        return None
    for item in items:
        if isinstance(item, dict) and item.get("id") == record_id:
            return dict(item)
    return None


class CreateMutation(OptimisticMutation):
    """
    variables: the create payload (dict). A placeholder record with a temp id
    goes to the head of the region and is swapped for the server's record.
    """

    kind = "create"

    def __init__(self, *args, decorate: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.decorate = decorate

    def prepare(self, variables):
        tid = temp_id()
        entity = {**variables, "id": tid}
        if self.decorate is not None:
            entity = self.decorate(entity)
        return {"temp_id": tid, "entity": entity, "record": None}

    def apply(self, current, variables, ctx):
        return [ctx["entity"]] + list(current or [])

    def reconcile(self, current, data, variables, ctx):
        tid = ctx["temp_id"]
        # drop a copy a refetch may already have brought in, then swap the placeholder
        items = [r for r in (current or []) if r.get("id") != data.get("id")]
        if any(r.get("id") == tid for r in items):
            return [data if r.get("id") == tid else r for r in items]
        return [data] + items

    def view_pending(self, view, variables, ctx):
        view.dialog_open = False

    def view_reconciled(self, view, data, variables, ctx):
        if view.shows(ctx["temp_id"]):
            view.selected = dict(data)

    def view_rolled_back(self, view, variables, ctx):
        if view.shows(ctx["temp_id"]):
            view.close()
        view.dialog_open = True


class UpdateMutation(OptimisticMutation):
    """variables: {"id": <record id>, "updates": {field: value, ...}}"""

    kind = "update"

    def prepare(self, variables):
        return {"id": variables["id"]}

    def apply(self, current, variables, ctx):
        if current is None:
            return None
        rid, updates = variables["id"], variables["updates"]
        return [{**r, **updates} if r.get("id") == rid else r for r in current]

    def reconcile(self, current, data, variables, ctx):
        if current is None or not isinstance(data, dict):
            return current
        rid = variables["id"]
        return [{**r, **data} if r.get("id") == rid else r for r in current]

    def view_pending(self, view, variables, ctx):
        if view.shows(variables["id"]):
            view.selected = {**view.selected, **variables["updates"]}

    def view_reconciled(self, view, data, variables, ctx):
        if view.shows(variables["id"]) and isinstance(data, dict):
            view.selected = {**view.selected, **data}

    def view_rolled_back(self, view, variables, ctx):
        if view.shows(variables["id"]) and ctx.get("record") is not None:
            view.selected = dict(ctx["record"])


class DeleteMutation(OptimisticMutation):
    """variables: the id of the record to remove."""

    kind = "delete"

    def prepare(self, variables):
        return {"id": variables}

    def apply(self, current, variables, ctx):
        if current is None:
            return None
        return [r for r in current if r.get("id") != variables]

    def view_pending(self, view, variables, ctx):
        # not reopened on rollback
        if view.shows(variables):
            view.close()
