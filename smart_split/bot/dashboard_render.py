from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Optional

from smart_split.bot.text import esc, format_amount, member_label
from smart_split.services.entities import Bill, Member
from smart_split.services.ledger import SettlementSummary, Transfer
from smart_split.state.sync import SyncStatus

STATUS_LABELS = {
    SyncStatus.OFFLINE: "saved locally",
    SyncStatus.CONNECTING: "connecting…",
    SyncStatus.ONLINE: "live",
    SyncStatus.ERROR: "sync error",
}


def render_members(members: Sequence[Member]) -> str:
    if not members:
        return "<b>Members</b>\n<i>No members yet.</i>"
    lines = [f"{i}. {esc(m.name)}" for i, m in enumerate(members, start=1)]
    return f"<b>Members ({len(members)})</b>\n" + "\n".join(lines)


def render_bills(bills: Sequence[Bill], members: Sequence[Member]) -> str:
    if not bills:
        return "<b>Bills</b>\n<i>No bills yet. Add one with /bill &lt;title&gt;.</i>"
    by_id = {m.id: m for m in members}
    lines = []
    for i, b in enumerate(bills, start=1):
        payer = esc(member_label(by_id.get(b.payer_id)))
        lines.append(
            f"{i}. <b>{esc(b.title)}</b> {format_amount(b.amount)}\n"
            f"    {payer} paid, split {len(b.involved_ids)} ways"
        )
    return f"<b>Bills ({len(bills)})</b>\n" + "\n".join(lines)


def _transfer_lines(transfers: Sequence[Transfer], by_id: dict[str, Member], limit: int) -> list[str]:
    lines = []
    for t in transfers[:limit]:
        frm = member_label(by_id.get(t.from_member_id), t.from_member_id)
        to = member_label(by_id.get(t.to_member_id), t.to_member_id)
        lines.append(f"{frm} → {to}: {format_amount(t.amount)}")
    return lines


def render_settlement(summary: SettlementSummary, members: Sequence[Member]) -> str:
    if summary.bill_count == 0:
        return "<i>No bills yet, nothing to settle.</i>"

    by_id = {m.id: m for m in members}

    lines_bal: list[str] = []
    for mid, bal in summary.balances.items():
        name = member_label(by_id.get(mid), mid)
        if bal > 0.01:
            lines_bal.append(f"{name:<14} {format_amount(round(bal, 2), signed=True)} (gets back)")
        elif bal < -0.01:
            lines_bal.append(f"{name:<14} {format_amount(round(bal, 2))} (owes)")
        else:
            lines_bal.append(f"{name:<14} 0")

    lines_settle = _transfer_lines(summary.transfers, by_id, limit=30) or ["Nobody needs to pay anyone."]

    return (
        f"<b>Total spent:</b> {format_amount(round(summary.total_spent, 2))}\n"
        f"<b>Bills:</b> {summary.bill_count}   "
        f"<b>Per member:</b> {format_amount(round(summary.average_per_member, 2))}\n\n"
        f"<b>Balances</b>\n<pre>{esc(chr(10).join(lines_bal))}</pre>\n"
        f"<b>Transfer plan</b>\n<pre>{esc(chr(10).join(lines_settle))}</pre>"
    )


def render_dashboard(
    *,
    members: Sequence[Member],
    summary: SettlementSummary,
    status: SyncStatus,
    room_id: Optional[str],
) -> str:
    where = STATUS_LABELS[status]
    if room_id:
        where = f"{where} · room <code>{esc(room_id)}</code>"
    updated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    text = (
        f"🧾 <b>Smart Split</b> ({where})\n\n"
        f"{render_settlement(summary, members)}\n\n"
        f"<i>Updated: {updated}</i>"
    )
    return text[:4096]
