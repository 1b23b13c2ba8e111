import pandas as pd
import pytest

from contact_directory.csv_io import EXPORT_COLUMNS, CsvInputError, export_csv, read_csv_rows
from contact_directory.models import entity_from_mapping
from contact_directory.normalization import RAW_ROW_FIELDS, normalize_header_key


def test_normalize_header_key_strips_bom_and_nbsp():
    assert normalize_header_key("\ufeffObject\u00a0ID ") == "object id"
    assert normalize_header_key("  Display   Name") == "display name"


def test_read_csv_rows_normalizes_headers(tmp_path):
    path = tmp_path / "users.csv"
    content = (
        "\ufeffObjectId,Display\u00a0Name,MobilePhone,UserPrincipalName,Title,Department,Office,Extra\n"
        "oid-1, Alice Smith ,555-0100,alice@contoso.com,Engineer,,tsa:PLY,ignored\n"
    )
    path.write_text(content, encoding="utf-8")
    rows = read_csv_rows(str(path))
    assert rows == [
        {
            "object id": "oid-1",
            "display name": "Alice Smith",
            "mobile phone": "555-0100",
            "user principal name": "alice@contoso.com",
            "title": "Engineer",
            "department": None,
            "office": "tsa:PLY",
        }
    ]


def test_read_csv_rows_fills_missing_columns(tmp_path):
    path = tmp_path / "partial.csv"
    pd.DataFrame([{"Object ID": "oid-1", "Display Name": "Alice"}]).to_csv(path, index=False)
    (row,) = read_csv_rows(path)
    assert set(row) == set(RAW_ROW_FIELDS)
    assert row["object id"] == "oid-1"
    assert row["title"] is None


def test_read_csv_rows_missing_file(tmp_path):
    with pytest.raises(CsvInputError):
        read_csv_rows(str(tmp_path / "missing.csv"))


def test_read_csv_rows_empty_file(tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("", encoding="utf-8")
    assert read_csv_rows(str(path)) == []


def test_export_csv_projects_synced_entities(tmp_path):
    entities = [
        entity_from_mapping(
            {
                "kind": "external",
                "id": "alice-smith",
                "objectId": "oid-1",
                "displayName": "Alice Smith",
                "upn": "alice@contoso.com",
                "department": "Engineering",
                "source": "Merged",
                "contactPoints": [
                    {"type": "desk-extension", "value": "4411"},
                    {"type": "mobile", "value": "555-0100"},
                    {"type": "mobile", "value": "555-0199"},
                ],
                "roles": [
                    {"brand": "tsa", "office": "PLY", "priority": 2, "title": "Advisor"},
                    {"brand": "tsa", "office": "FTL", "priority": 1, "title": "Lead"},
                ],
            }
        ),
        {
            "kind": "internal",
            "id": "front-desk",
            "displayName": "Front Desk",
            "source": "Manual",
        },
        {
            "kind": "external",
            "id": "bob-jones",
            "objectId": "oid-2",
            "displayName": "Bob Jones",
            "source": "Office365",
        },
    ]
    destination = tmp_path / "out" / "export.csv"
    assert export_csv(entities, destination) == 2

    header = destination.read_text(encoding="utf-8").splitlines()[0]
    assert header == ",".join(f'"{column}"' for column in EXPORT_COLUMNS)

    df = pd.read_csv(destination, dtype=str, keep_default_na=False)
    assert list(df.columns) == EXPORT_COLUMNS
    records = df.to_dict(orient="records")
    assert records[0] == {
        "Display Name": "Alice Smith",
        "Mobile Phone": "555-0100",
        "Object ID": "oid-1",
        "User Principal Name": "alice@contoso.com",
        "Title": "Lead",
        "Department": "Engineering",
    }
    assert records[1]["Object ID"] == "oid-2"
    assert records[1]["Title"] == ""
