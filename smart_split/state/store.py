from __future__ import annotations

import enum
import logging
import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Optional, Protocol

from smart_split.errors import InvariantViolation
from smart_split.services.entities import Bill, Member, dedupe, new_bill_id, new_member_id, now_ms
from smart_split.services.local_storage import LocalStorage
from smart_split.state.debounce import CoalescingTask

logger = logging.getLogger(__name__)

MIN_MEMBERS = 2


class Provenance(str, enum.Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class StateChange:
    members: tuple[Member, ...]
    bills: tuple[Bill, ...]
    provenance: Provenance


class Persistence(Protocol):
    def persist(self, change: StateChange) -> None: ...


Listener = Callable[[StateChange], None]


class StateStore:
    """Sole owner of the canonical member and bill collections.

    Mutations are synchronous and land in memory first; the active persistence
    strategy is then told about the change and decides how to write it out.
    Readers get tuples, so nothing outside the store can alias its state.
    """

    def __init__(
        self,
        *,
        members: Iterable[Member] = (),
        bills: Iterable[Bill] = (),
        persistence: Optional[Persistence] = None,
    ) -> None:
        self._members: tuple[Member, ...] = tuple(members)
        self._bills: tuple[Bill, ...] = tuple(bills)
        self._persistence = persistence
        self._listeners: list[Listener] = []

    @property
    def members(self) -> tuple[Member, ...]:
        return self._members

    @property
    def bills(self) -> tuple[Bill, ...]:
        return self._bills

    @property
    def persistence(self) -> Optional[Persistence]:
        return self._persistence

    def use(self, persistence: Optional[Persistence]) -> None:
        self._persistence = persistence

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def member(self, member_id: str) -> Optional[Member]:
        return next((m for m in self._members if m.id == member_id), None)

    def bill(self, bill_id: str) -> Optional[Bill]:
        return next((b for b in self._bills if b.id == bill_id), None)

    # --- members ---

    def add_member(self, name: str) -> Member:
        member = Member(id=new_member_id(), name=_clean_name(name))
        self._commit(self._members + (member,), self._bills)
        return member

    def rename_member(self, member_id: str, name: str) -> Member:
        current = self._require_member(member_id)
        renamed = current.model_copy(update={"name": _clean_name(name)})
        self._commit(tuple(renamed if m.id == member_id else m for m in self._members), self._bills)
        return renamed

    def remove_member(self, member_id: str) -> None:
        """Drop a member and strip their id from every bill.

        A bill left without participants is charged to its payer. When the payer
        is the member being removed (or is already gone) the removal is refused.
        """
        self._require_member(member_id)
        if len(self._members) <= MIN_MEMBERS:
            raise InvariantViolation(f"At least {MIN_MEMBERS} members are required.")

        remaining_members = tuple(m for m in self._members if m.id != member_id)
        remaining_ids = {m.id for m in remaining_members}

        bills: list[Bill] = []
        for bill in self._bills:
            if member_id not in bill.involved_ids:
                bills.append(bill)
                continue
            involved = tuple(mid for mid in bill.involved_ids if mid != member_id)
            if not involved:
                if bill.payer_id not in remaining_ids:
                    raise InvariantViolation(
                        f"Cannot remove this member: they are the only participant of {bill.title!r}. "
                        "Delete or edit that bill first."
                    )
                involved = (bill.payer_id,)
            bills.append(bill.model_copy(update={"involved_ids": involved}))

        self._commit(remaining_members, tuple(bills))

    # --- bills ---

    def add_bill(
        self,
        *,
        title: str,
        amount: float,
        payer_id: str,
        involved_ids: Sequence[str],
        created_at: Optional[int] = None,
    ) -> Bill:
        self._require_member(payer_id)
        bill = Bill(
            id=new_bill_id(),
            title=_clean_title(title),
            amount=_check_amount(amount),
            payer_id=payer_id,
            involved_ids=self._check_involved(involved_ids),
            created_at=created_at if created_at is not None else now_ms(),
        )
        # Newest first.
        self._commit(self._members, (bill,) + self._bills)
        return bill

    def update_bill(
        self,
        bill_id: str,
        *,
        title: Optional[str] = None,
        amount: Optional[float] = None,
        payer_id: Optional[str] = None,
        involved_ids: Optional[Sequence[str]] = None,
    ) -> Bill:
        current = self.bill(bill_id)
        if current is None:
            raise InvariantViolation("No such bill.")

        update: dict = {}
        if title is not None:
            update["title"] = _clean_title(title)
        if amount is not None:
            update["amount"] = _check_amount(amount)
        if payer_id is not None and payer_id != current.payer_id:
            self._require_member(payer_id)
            update["payer_id"] = payer_id
        if involved_ids is not None:
            update["involved_ids"] = self._check_involved(involved_ids)

        updated = current.model_copy(update=update)
        self._commit(self._members, tuple(updated if b.id == bill_id else b for b in self._bills))
        return updated

    def delete_bill(self, bill_id: str) -> None:
        if self.bill(bill_id) is None:
            raise InvariantViolation("No such bill.")
        self._commit(self._members, tuple(b for b in self._bills if b.id != bill_id))

    # --- whole state ---

    def replace(
        self,
        members: Iterable[Member],
        bills: Iterable[Bill],
        *,
        provenance: Provenance = Provenance.LOCAL,
    ) -> None:
        self._commit(tuple(members), tuple(bills), provenance)

    def _commit(
        self,
        members: tuple[Member, ...],
        bills: tuple[Bill, ...],
        provenance: Provenance = Provenance.LOCAL,
    ) -> None:
        self._members = members
        self._bills = bills
        change = StateChange(members=members, bills=bills, provenance=provenance)
        if self._persistence is not None:
            self._persistence.persist(change)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("State listener failed")

    def _require_member(self, member_id: str) -> Member:
        member = self.member(member_id)
        if member is None:
            raise InvariantViolation("No such member.")
        return member

    def _check_involved(self, involved_ids: Sequence[str]) -> tuple[str, ...]:
        involved = dedupe(involved_ids)
        if not involved:
            raise InvariantViolation("A bill needs at least one participant.")
        known = {m.id for m in self._members}
        if any(mid not in known for mid in involved):
            raise InvariantViolation("Participants must be current members.")
        return involved


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise InvariantViolation("Name must not be empty.")
    return name


def _clean_title(title: str) -> str:
    title = (title or "").strip()
    if not title:
        raise InvariantViolation("Title must not be empty.")
    return title


def _check_amount(amount: float) -> float:
    amount = float(amount)
    if not math.isfinite(amount) or amount <= 0:
        raise InvariantViolation("Amount must be a positive number.")
    return amount


class LocalPersistence:
    """Writes the latest state to durable local storage, one write per burst of changes."""

    def __init__(self, store: StateStore, storage: LocalStorage) -> None:
        self._store = store
        self._storage = storage
        self._writer = CoalescingTask(self._write, delay=0.0, name=f"local-write:{storage.scope}")

    @property
    def storage(self) -> LocalStorage:
        return self._storage

    def persist(self, change: StateChange) -> None:
        self._writer.schedule()

    async def flush(self) -> None:
        await self._writer.flush()

    async def clear(self) -> None:
        self._writer.cancel()
        await self._storage.clear()

    async def _write(self) -> None:
        await self._storage.save(self._store.members, self._store.bills)
