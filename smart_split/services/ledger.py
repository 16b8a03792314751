from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from smart_split.services.entities import Bill, Member

# Balances within this band count as settled. Tied to a currency granularity of one cent.
EPSILON = 0.01


@dataclass(frozen=True)
class Transfer:
    from_member_id: str  # debtor
    to_member_id: str  # creditor
    amount: float


@dataclass(frozen=True)
class SettlementSummary:
    total_spent: float
    bill_count: int
    average_per_member: float
    balances: dict[str, float]  # positive is owed, negative owes
    transfers: list[Transfer]


def compute_balances(bills: Iterable[Bill], members: Iterable[Member]) -> dict[str, float]:
    """Net balance per member id under an equal split of every bill.

    Every member starts at zero so members without bills still appear. Ids that
    only occur on bills (a payer or participant that was removed) are kept under
    their stored id.
    """
    balances: dict[str, float] = {m.id: 0.0 for m in members}

    for bill in bills:
        parts = bill.involved_ids
        if not parts:
            continue
        balances[bill.payer_id] = balances.get(bill.payer_id, 0.0) + bill.amount
        share = bill.amount / len(parts)
        for mid in parts:
            balances[mid] = balances.get(mid, 0.0) - share

    return balances


def compute_settlement(balances: Mapping[str, float]) -> list[Transfer]:
    """Greedy plan: the largest debtor pays the largest creditor until one side runs out.

    Running balances are kept unrounded; only the recorded amounts are rounded
    to cents.
    """
    debtors: list[list] = [[mid, bal] for mid, bal in balances.items() if bal < -EPSILON]
    creditors: list[list] = [[mid, bal] for mid, bal in balances.items() if bal > EPSILON]

    debtors.sort(key=lambda x: x[1])
    creditors.sort(key=lambda x: x[1], reverse=True)

    out: list[Transfer] = []
    i = 0
    j = 0
    while i < len(debtors) and j < len(creditors):
        d_id, owe = debtors[i]
        c_id, recv = creditors[j]
        amt = min(-owe, recv)
        out.append(Transfer(from_member_id=d_id, to_member_id=c_id, amount=round(amt, 2)))
        owe += amt
        recv -= amt
        debtors[i][1] = owe
        creditors[j][1] = recv
        if abs(owe) < EPSILON:
            i += 1
        if recv < EPSILON:
            j += 1
    return out


def summarize(members: Sequence[Member], bills: Sequence[Bill]) -> SettlementSummary:
    balances = compute_balances(bills, members)
    total = sum(b.amount for b in bills)
    return SettlementSummary(
        total_spent=total,
        bill_count=len(bills),
        average_per_member=total / len(members) if members else 0.0,
        balances=balances,
        transfers=compute_settlement(balances),
    )
