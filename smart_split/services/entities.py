from __future__ import annotations

import time
import uuid

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel


class Entity(BaseModel):
    # Wire form is camelCase (payerId, involvedIds, createdAt); Python code uses snake_case.
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Member(Entity):
    id: str
    name: str


class Bill(Entity):
    id: str
    title: str
    amount: float = Field(gt=0)
    payer_id: str
    # Ordered set, never empty.
    involved_ids: tuple[str, ...] = Field(min_length=1)
    created_at: int  # epoch milliseconds


MEMBER_LIST = TypeAdapter(list[Member])
BILL_LIST = TypeAdapter(list[Bill])


def now_ms() -> int:
    return int(time.time() * 1000)


def new_member_id() -> str:
    return f"m-{uuid.uuid4().hex[:12]}"


def new_bill_id() -> str:
    return str(uuid.uuid4())


def default_members(count: int) -> list[Member]:
    return [Member(id=f"m-{i}", name=f"Member {i}") for i in range(1, count + 1)]


def dedupe(ids) -> tuple[str, ...]:
    seen: set[str] = set()
    out: list[str] = []
    for mid in ids:
        if mid not in seen:
            seen.add(mid)
            out.append(mid)
    return tuple(out)


class DataDocument(Entity):
    """Full-state document used for backup files and remote rooms."""

    members: tuple[Member, ...] = ()
    bills: tuple[Bill, ...] = ()
    updated_at: int = 0

    @model_validator(mode="after")
    def _unique_ids(self) -> "DataDocument":
        for kind, ids in (("member", [m.id for m in self.members]), ("bill", [b.id for b in self.bills])):
            if len(set(ids)) != len(ids):
                raise ValueError(f"duplicate {kind} ids")
        return self
