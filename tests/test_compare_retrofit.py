import json

from contact_directory import compare_canonicals as compare
from contact_directory import retrofit
from contact_directory.normalization import manual_object_id


def _payload(entities):
    return {
        "ContactEntities": entities,
        "Locations": [],
        "_meta": {"generatedFrom": ["seed"], "generatedAt": "2024-01-01T00:00:00Z", "version": 1},
    }


def _entity(object_id, name, **extra):
    entity = {
        "kind": "external",
        "id": name.lower().replace(" ", "-"),
        "objectId": object_id,
        "displayName": name,
        "source": "Office365",
    }
    entity.update(extra)
    return entity


ROLES = [
    {"brand": "tsa", "office": "PLY", "priority": 1, "title": "Lead"},
    {"brand": "acme", "office": "FTL", "priority": 2},
]


def _write(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_compare_exports_by_object_id(tmp_path):
    file_a = _write(
        tmp_path / "a.json",
        _payload(
            [
                _entity("oid-1", "Alice Smith", roles=ROLES),
                _entity("oid-2", "Bob Jones", department="Sales"),
                _entity("oid-3", "Cara Diaz"),
            ]
        ),
    )
    file_b = _write(
        tmp_path / "b.json",
        _payload(
            [
                _entity("oid-1", "Alice Smith", roles=list(reversed(ROLES))),
                _entity("oid-2", "Bob Jones"),
                _entity("oid-4", "Dan Hale"),
            ]
        ),
    )
    report = compare.compare_exports(
        compare.read_export(str(file_a)), compare.read_export(str(file_b)), "a.json", "b.json"
    )
    assert [entity["objectId"] for entity in report.added] == ["oid-3"]
    assert [entity["objectId"] for entity in report.removed] == ["oid-4"]
    assert report.modified == [
        {"objectId": "oid-2", "diffs": {"department": {"before": "Sales", "after": None}}}
    ]

    summary = report.to_dict("now")["summary"]
    assert (summary["added"], summary["removed"], summary["modified"]) == (1, 1, 1)
    assert summary["metadata"]["fileA"] == "a.json"


def test_compare_main_writes_report(tmp_path):
    same = _payload([_entity("oid-1", "Alice Smith")])
    file_a = _write(tmp_path / "a.json", same)
    file_b = _write(tmp_path / "b.json", same)
    log_dir = tmp_path / "logs"
    args = ["--a", str(file_a), "--b", str(file_b), "--log-dir", str(log_dir), "--fail-on-diff"]
    assert compare.main(args) == 0
    (report_file,) = list(log_dir.glob("diff-a.json-vs-b.json-*.json"))
    report = json.loads(report_file.read_text(encoding="utf-8"))
    assert report["summary"]["totalComparedA"] == 1
    assert report["modifiedEntities"] == []


def test_compare_main_rejects_invalid_file(tmp_path):
    file_a = _write(tmp_path / "a.json", {"ContactEntities": "nope"})
    file_b = _write(tmp_path / "b.json", _payload([]))
    assert compare.main(["--a", str(file_a), "--b", str(file_b), "--log-dir", str(tmp_path)]) == 1


def test_retrofit_entity_rules():
    fixed, changed = retrofit.retrofit_entity(
        {"kind": "external", "id": "room", "objectId": "manual-room-1234abcd"}, 0
    )
    assert changed and fixed["kind"] == "internal"

    fixed, changed = retrofit.retrofit_entity({"kind": "internal", "id": "Board Room"}, 1)
    assert changed
    assert fixed["objectId"] == manual_object_id("Board Room")

    fixed, changed = retrofit.retrofit_entity({"id": "alice", "objectId": "oid-1"}, 2)
    assert changed and fixed["kind"] == "external"

    entity = {"kind": "external", "id": "bob", "objectId": "oid-2"}
    assert retrofit.retrofit_entity(entity, 3) == (entity, False)


def test_retrofit_file_and_dry_run(tmp_path):
    path = _write(
        tmp_path / "canonical.json",
        _payload([{"kind": "external", "id": "room", "objectId": "manual-room-1234abcd"}]),
    )
    original = path.read_text(encoding="utf-8")

    assert retrofit.main([str(path), "--dry-run"]) == 0
    assert path.read_text(encoding="utf-8") == original

    assert retrofit.main([str(path)]) == 0
    assert json.loads(path.read_text(encoding="utf-8"))["ContactEntities"][0]["kind"] == "internal"


def test_retrofit_missing_file(tmp_path):
    assert retrofit.main([str(tmp_path / "absent.json")]) == 1
