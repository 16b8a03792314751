from __future__ import annotations

import html
from typing import Optional

from smart_split.services.entities import Member

UNKNOWN_PAYER = "unknown payer"


def esc(s: str) -> str:
    return html.escape(s, quote=False)


def member_label(m: Optional[Member], fallback_id: Optional[str] = None) -> str:
    if m is not None:
        return m.name
    if fallback_id is not None:
        return f"({fallback_id})"
    return UNKNOWN_PAYER


def format_amount(amount: float, *, signed: bool = False) -> str:
    sign = "+" if signed and amount > 0 else ""
    if float(amount).is_integer():
        return f"{sign}{int(amount):,}"
    return f"{sign}{amount:,.2f}"


def parse_amount(text: str) -> Optional[float]:
    try:
        value = float(text.replace(",", "").strip())
    except ValueError:
        return None
    return value if value > 0 else None
