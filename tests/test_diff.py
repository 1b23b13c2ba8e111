from contact_directory.diff import diff, diff_canonical, roles_differ
from contact_directory.models import CanonicalExport


def _entity(entity_id, object_id, name, **extra):
    entity = {
        "kind": "external",
        "id": entity_id,
        "objectId": object_id,
        "displayName": name,
        "source": "Office365",
    }
    entity.update(extra)
    return entity


def _export(*entities):
    return CanonicalExport.from_mapping(
        {
            "ContactEntities": list(entities),
            "Locations": [],
            "_meta": {"generatedFrom": ["seed"], "generatedAt": "2024-01-01T00:00:00Z", "version": 1},
        }
    )


def test_diff_against_missing_previous_marks_everything_added():
    nxt = _export(_entity("a", "oid-a", "A"), _entity("b", "oid-b", "B"))
    result = diff_canonical(None, nxt)
    assert [entity.id for entity in result.added] == ["a", "b"]
    assert result.removed == []
    assert result.changed == {}
    assert result.changed_count == 0


def test_diff_of_identical_exports_is_empty():
    export = _export(_entity("a", "oid-a", "A"))
    result = diff_canonical(export, _export(_entity("a", "oid-a", "A")))
    assert not result.has_changes


def test_diff_combined_scenario():
    prev = _export(
        _entity("a", "oid-a", "A"),
        _entity("b", "oid-b", "B"),
        _entity("c", "oid-c", "C"),
    )
    nxt = _export(
        _entity("a", "oid-a", "A"),
        _entity("b", "oid-b", "B", department="Sales"),
        _entity("d", "oid-d", "D"),
    )
    result = diff_canonical(prev, nxt)
    assert [entity.id for entity in result.added] == ["d"]
    assert [entity.id for entity in result.removed] == ["c"]
    assert list(result.changed) == ["b"]
    assert result.changed["b"]["after"].department == "Sales"

    summary = result.to_dict()
    assert summary["changedCount"] == 1
    assert summary["changed"]["b"]["before"]["displayName"] == "B"


def test_field_diff_over_union_of_keys():
    changes = diff({"a": 1, "b": [1, 2]}, {"a": 1, "b": [2, 1], "c": "new"})
    assert changes == {
        "b": {"before": [1, 2], "after": [2, 1]},
        "c": {"before": None, "after": "new"},
    }


def test_field_diff_ignores_role_order():
    roles = [
        {"brand": "tsa", "office": "PLY", "priority": 1, "title": "Lead"},
        {"brand": "acme", "office": "FTL", "priority": 2},
    ]
    assert diff({"roles": roles}, {"roles": list(reversed(roles))}) == {}
    assert not roles_differ(roles, [dict(role, brand=role["brand"].upper()) for role in roles])


def test_field_diff_detects_role_title_change():
    before = {"roles": [{"brand": "tsa", "office": "PLY", "priority": 1, "title": "Lead"}]}
    after = {"roles": [{"brand": "tsa", "office": "PLY", "priority": 1, "title": "Manager"}]}
    assert set(diff(before, after)) == {"roles"}


def test_field_diff_accepts_models():
    export = _export(_entity("a", "oid-a", "A"))
    entity = export.ContactEntities[0]
    assert diff(entity, entity.replace(displayName="Alpha")) == {
        "displayName": {"before": "A", "after": "Alpha"}
    }
