from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import date
from typing import Optional, Union

from pydantic import ValidationError

from smart_split.errors import MalformedImportError
from smart_split.services.entities import Bill, DataDocument, Member, now_ms


def export_backup(members: Sequence[Member], bills: Sequence[Bill], *, updated_at: Optional[int] = None) -> str:
    doc = DataDocument(
        members=tuple(members),
        bills=tuple(bills),
        updated_at=updated_at if updated_at is not None else now_ms(),
    )
    return json.dumps(doc.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False)


def backup_filename(day: date) -> str:
    return f"SmartSplit_Backup_{day.isoformat()}.json"


def parse_backup(raw: Union[str, bytes]) -> DataDocument:
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeError) as e:
        raise MalformedImportError("The file is not valid JSON.") from e

    if not isinstance(data, dict) or "members" not in data or "bills" not in data:
        raise MalformedImportError("The file must contain both members and bills.")

    try:
        return DataDocument.model_validate(data)
    except ValidationError as e:
        raise MalformedImportError("The file contains invalid members or bills.") from e
