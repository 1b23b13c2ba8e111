from contact_directory.diagnostics import Diagnostics
from contact_directory.normalization import (
    MergeSettings,
    fallback_id,
    first_mobile_token,
    parse_office_tag,
)
from contact_directory.transform import assign_ids, rows_to_entities, to_canonical


def _row(object_id, name, **fields):
    row = {
        "object id": object_id,
        "display name": name,
        "mobile phone": None,
        "user principal name": None,
        "title": None,
        "department": None,
        "office": None,
    }
    row.update(fields)
    return row


def test_first_mobile_token_splits_on_separators():
    assert first_mobile_token("555-0100, 555-0199") == "555-0100"
    assert first_mobile_token(" 555-0100 / 555-0199") == "555-0100"
    assert first_mobile_token("555-0100;555-0199") == "555-0100"
    assert first_mobile_token("") == ""


def test_parse_office_tag_variants():
    assert parse_office_tag(None) is None
    full = parse_office_tag("TSA:ply")
    assert (full.brand, full.office, full.is_full) == ("tsa", "PLY", True)
    bare = parse_office_tag("ftl")
    assert (bare.brand, bare.office, bare.is_full) == ("", "FTL", False)
    assert parse_office_tag("tsa:").is_full is False


def test_slug_collision_demotes_all_holders():
    rows = [
        _row("oid-1", "Jane Doe"),
        _row("oid-2", "Jane Doe"),
        _row("oid-3", "Bob Stone"),
    ]
    entities = {entity.objectId: entity for entity in rows_to_entities(rows)}
    assert entities["oid-1"].id == fallback_id("oid-1")
    assert entities["oid-2"].id == fallback_id("oid-2")
    assert len(entities["oid-1"].id) == 16
    assert entities["oid-3"].id == "bob-stone"


def test_empty_slug_falls_back_to_hash():
    entities = rows_to_entities([_row("oid-1", None)])
    assert entities[0].id == fallback_id("oid-1")


def test_taken_ids_get_numeric_suffix():
    payloads = [{"displayName": "Front Desk", "objectId": "oid-1"}]
    assign_ids(payloads, taken={"front-desk", "front-desk-2"})
    assert payloads[0]["id"] == "front-desk-3"


def test_missing_object_id_is_skipped_with_warning():
    diagnostics = Diagnostics()
    entities = rows_to_entities(
        [_row("", "Ghost"), _row("oid-1", "Alice Smith")], diagnostics=diagnostics
    )
    assert [entity.id for entity in entities] == ["alice-smith"]
    assert len(diagnostics.warnings) == 1
    assert "Ghost" in diagnostics.warnings[0].message


def test_duplicate_object_id_keeps_first_row():
    diagnostics = Diagnostics()
    entities = rows_to_entities(
        [_row("oid-1", "Alice Smith"), _row("oid-1", "Alice Jones")], diagnostics=diagnostics
    )
    assert [entity.displayName for entity in entities] == ["Alice Smith"]
    assert len(diagnostics.warnings) == 1


def test_invalid_entity_is_dropped():
    diagnostics = Diagnostics()
    entities = rows_to_entities(
        [_row("oid-1", "Alice Smith", **{"user principal name": "not-an-email"})],
        diagnostics=diagnostics,
    )
    assert entities == []
    assert "oid-1" in diagnostics.warnings[0].message


def test_fields_mapped_from_row():
    row = _row(
        "oid-1",
        "Alice Smith",
        **{
            "mobile phone": "555-0100, 555-0199",
            "user principal name": "alice@contoso.com",
            "title": "Engineer",
            "department": "R&D",
        },
    )
    (entity,) = rows_to_entities([row], settings=MergeSettings(default_brand="acme"))
    assert entity.kind == "external"
    assert entity.source == "Office365"
    assert [(p.type, p.value, p.source) for p in entity.contactPoints] == [
        ("mobile", "555-0100", "Office365")
    ]
    assert [(r.brand, r.office, r.title, r.priority) for r in entity.roles] == [
        ("acme", "PLY", "Engineer", 1)
    ]
    assert entity.department == "R&D"


def test_no_title_means_no_role():
    (entity,) = rows_to_entities([_row("oid-1", "Alice Smith")])
    assert entity.roles == []
    assert entity.contactPoints == []


def test_entities_sorted_by_display_name():
    rows = [_row("oid-1", "Zed Ward"), _row("oid-2", "amy Adams"), _row("oid-3", None)]
    names = [entity.displayName for entity in rows_to_entities(rows)]
    assert names == [None, "amy Adams", "Zed Ward"]


def test_to_canonical_meta():
    export = to_canonical([_row("oid-1", "Alice Smith")], "users.csv")
    assert export.meta.generatedFrom == ["users.csv"]
    assert export.meta.version == 1
    assert export.meta.hash == ""
    assert export.Locations == []
    assert export.to_dict()["_meta"]["hash"] == ""
