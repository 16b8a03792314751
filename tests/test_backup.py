import json
from datetime import date

import pytest

from smart_split.errors import MalformedImportError
from smart_split.services.backup import backup_filename, export_backup, parse_backup
from tests.conftest import make_bill


def test_export_uses_camel_case_fields(trio):
    raw = export_backup(trio, [make_bill("b1", 30, "alice", ["alice", "bob"])], updated_at=42)
    data = json.loads(raw)

    assert data["updatedAt"] == 42
    assert data["members"][0] == {"id": "alice", "name": "Alice"}
    assert data["bills"][0]["payerId"] == "alice"
    assert data["bills"][0]["involvedIds"] == ["alice", "bob"]


def test_backup_can_be_imported(trio):
    bills = [make_bill("b1", 30, "alice", ["alice", "bob"])]

    doc = parse_backup(export_backup(trio, bills).encode("utf-8"))

    assert list(doc.members) == trio
    assert list(doc.bills) == bills


def test_backup_filename():
    assert backup_filename(date(2024, 3, 9)) == "SmartSplit_Backup_2024-03-09.json"


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[]",
        '{"members": []}',
        '{"bills": []}',
        '{"members": [{"id": "a"}], "bills": []}',
        '{"members": [], "bills": [{"id": "b", "title": "x", "amount": 0, "payerId": "a", "involvedIds": [], "createdAt": 1}]}',
    ],
)
def test_malformed_backups_are_rejected(raw):
    with pytest.raises(MalformedImportError):
        parse_backup(raw)


@pytest.mark.parametrize(
    "raw",
    [
        '{"members": [{"id": "x", "name": "One"}, {"id": "x", "name": "Two"}], "bills": []}',
        '{"members": [{"id": "a", "name": "A"}], "bills": ['
        '{"id": "b", "title": "x", "amount": 5, "payerId": "a", "involvedIds": ["a"], "createdAt": 1},'
        '{"id": "b", "title": "y", "amount": 6, "payerId": "a", "involvedIds": ["a"], "createdAt": 2}]}',
        '{"members": [{"id": "a", "name": "A"}], "bills": ['
        '{"id": "b", "title": "x", "amount": 5, "payerId": "a", "involvedIds": [], "createdAt": 1}]}',
    ],
)
def test_backups_breaking_id_or_participant_rules_are_rejected(raw):
    with pytest.raises(MalformedImportError):
        parse_backup(raw)
