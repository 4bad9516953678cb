"""
Optimistic create/update/delete over a local collection of entities.

Every mutation is applied locally first, tagged with a SyncStatus, and then
reconciled with the store's answer: replaced by the confirmed entity on success,
rolled back to the exact prior entry on failure. Outcomes are returned as
``Ok``/``Err``; nothing raises past this module.

Only one mutation per entity may be in flight. A second one is rejected with
``ErrorKind.CONFLICT`` without issuing a request.
"""

import asyncio
import functools
import logging
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Generic, Iterable, Iterator, List, Optional, Tuple, TypeVar

from pydantic import BaseModel

from .models import SyncStatus
from .result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=BaseModel)

TEMP_ID_PREFIX = "temp-"

Send = Callable[[], Awaitable[Result]]


def new_temporary_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


def is_temporary_id(entity_id) -> bool:
    return str(entity_id).startswith(TEMP_ID_PREFIX)


@dataclass(frozen=True)
class Entry(Generic[E]):
    entity: E
    status: Optional[SyncStatus] = None

    @property
    def id(self) -> str:
        return self.entity.id

    @property
    def settled(self) -> bool:
        return self.status is None


@dataclass
class BatchReport:
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, Err] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def partial(self) -> bool:
        return bool(self.failed) and bool(self.succeeded)

    def summary(self, verb: str) -> str:
        return f"{len(self.succeeded)} of {self.total} {verb}"


class OptimisticCollection(Generic[E]):
    """Ordered local collection whose only writer is the reconciliation sequence."""

    def __init__(self, items: Iterable[E] = (), timeout: Optional[float] = None, name: str = "collection"):
        self._entries: List[Entry] = [Entry(item) for item in items]
        self._in_flight = set()
        self._detached = False
        self.timeout = timeout
        self.name = name
        self.last_error: Optional[Err] = None

    # --- Queries ---

    @property
    def entries(self) -> Tuple[Entry, ...]:
        return tuple(self._entries)

    @property
    def items(self) -> List[E]:
        return [entry.entity for entry in self._entries]

    @property
    def in_flight(self) -> frozenset:
        return frozenset(self._in_flight)

    def settled(self) -> List[E]:
        return [entry.entity for entry in self._entries if entry.settled]

    def get(self, entity_id) -> Optional[E]:
        index = self._index_of(entity_id)
        return None if index is None else self._entries[index].entity

    def status_of(self, entity_id) -> Optional[SyncStatus]:
        index = self._index_of(entity_id)
        return None if index is None else self._entries[index].status

    def __len__(self):
        return len(self._entries)

    def __iter__(self) -> Iterator[E]:
        return iter(self.items)

    def __contains__(self, entity_id):
        return self._index_of(entity_id) is not None

    # --- Lifecycle ---

    def replace_all(self, items: Iterable[E]):
        """Load a fresh fetch. Entries with a mutation in flight keep their local state."""
        pending = {entry.id: entry for entry in self._entries if entry.id in self._in_flight}
        fresh = [pending.pop(item.id, Entry(item)) for item in items]
        # provisional creates are not known to the store yet
        self._entries = [entry for entry in pending.values() if is_temporary_id(entry.id)] + fresh

    def detach(self):
        """Stop reconciling. Mutations still in flight complete without touching the collection."""
        self._detached = True

    @property
    def detached(self) -> bool:
        return self._detached

    # --- Mutations ---

    async def create(self, provisional: E, send: Send) -> Result:
        temp_id = new_temporary_id()
        self._entries.insert(0, Entry(provisional.model_copy(update={"id": temp_id}), SyncStatus.SYNCING))
        self._in_flight.add(temp_id)

        try:
            result = await self._send(send)
        finally:
            self._in_flight.discard(temp_id)

        if self._detached:
            return result

        index = self._index_of(temp_id)
        if isinstance(result, Ok):
            if index is not None:
                self._entries[index] = Entry(result.value)
        else:
            if index is not None:
                del self._entries[index]
            self._record_failure("create", temp_id, result)
        return result

    async def update(self, entity_id, changes: Dict, send: Send) -> Result:
        rejected = self._check_mutable(entity_id, "update")
        if rejected:
            return rejected

        index = self._index_of(entity_id)
        previous = self._entries[index]
        self._entries[index] = Entry(previous.entity.model_copy(update=changes), SyncStatus.SYNCING)
        self._in_flight.add(entity_id)

        try:
            result = await self._send(send)
        finally:
            self._in_flight.discard(entity_id)

        if self._detached:
            return result

        index = self._index_of(entity_id)
        if index is None:
            return result
        if isinstance(result, Ok):
            self._entries[index] = Entry(result.value)
        else:
            self._entries[index] = previous
            self._record_failure("update", entity_id, result)
        return result

    async def delete(self, entity_id, send: Send) -> Result:
        return await self._remove(entity_id, send, SyncStatus.DELETING, "delete")

    async def move(self, entity_id, send: Send) -> Result:
        """Move the entity out of this collection (e.g. a card to another project)."""
        return await self._remove(entity_id, send, SyncStatus.SYNCING, "move")

    async def delete_many(self, entity_ids: Iterable, send_for: Callable[..., Awaitable[Result]]) -> BatchReport:
        return await self._batch(entity_ids, self.delete, send_for, "deleted")

    async def move_many(self, entity_ids: Iterable, send_for: Callable[..., Awaitable[Result]]) -> BatchReport:
        return await self._batch(entity_ids, self.move, send_for, "moved")

    # --- Internals ---

    async def _remove(self, entity_id, send: Send, status: SyncStatus, action: str) -> Result:
        rejected = self._check_mutable(entity_id, action)
        if rejected:
            return rejected

        index = self._index_of(entity_id)
        previous = self._entries[index]
        self._entries[index] = Entry(previous.entity, status)
        self._in_flight.add(entity_id)

        try:
            result = await self._send(send)
        finally:
            self._in_flight.discard(entity_id)

        if self._detached:
            return result

        index = self._index_of(entity_id)
        if index is None:
            return result
        if isinstance(result, Ok):
            del self._entries[index]
        else:
            self._entries[index] = previous
            self._record_failure(action, entity_id, result)
        return result

    async def _batch(self, entity_ids, operation, send_for, verb: str) -> BatchReport:
        ids = list(dict.fromkeys(entity_ids))
        results = await asyncio.gather(
            *(operation(entity_id, functools.partial(send_for, entity_id)) for entity_id in ids)
        )

        report = BatchReport()
        for entity_id, result in zip(ids, results):
            if isinstance(result, Ok):
                report.succeeded.append(entity_id)
            else:
                report.failed[entity_id] = result

        if report.ok:
            logger.info(f"{self.name}: {report.summary(verb)}")
        else:
            logger.warning(f"{self.name}: {report.summary(verb)}, failed: {sorted(report.failed)}")
        return report

    async def _send(self, send: Send) -> Result:
        try:
            if self.timeout is None:
                return await send()
            return await asyncio.wait_for(send(), self.timeout)
        except asyncio.TimeoutError:
            return Err(ErrorKind.TIMEOUT, f"No response within {self.timeout:g}s")
        except Exception as e:
            logger.exception(f"{self.name}: request raised instead of returning a result")
            return Err(ErrorKind.NETWORK, str(e) or e.__class__.__name__)

    def _check_mutable(self, entity_id, action: str) -> Optional[Err]:
        if self._index_of(entity_id) is None:
            error = Err(ErrorKind.NOT_FOUND, f"{entity_id} is not in {self.name}")
        elif entity_id in self._in_flight:
            error = Err(ErrorKind.CONFLICT, f"Another change to {entity_id} is still in flight")
        else:
            return None
        self._record_failure(action, entity_id, error)
        return error

    def _record_failure(self, action: str, entity_id, error: Err):
        self.last_error = error
        logger.warning(f"{self.name}: {action} {entity_id} failed ({error})")

    def _index_of(self, entity_id) -> Optional[int]:
        for index, entry in enumerate(self._entries):
            if entry.id == entity_id:
                return index
        return None
