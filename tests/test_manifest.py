import json
from pathlib import Path

from packer_sync.futures import FuturePool
from packer_sync.manifest import decode_manifest, discover_manifests, load_packages, project_from_path

REVISION = "c" * 40


def _write(root: Path, name: str, payload) -> Path:
    path = root / name
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
    return path


def test_project_name_strips_json_extension() -> None:
    assert project_from_path(Path("/cfg/billing-api.json")) == "billing-api"


def test_discover_manifests_matches_project_glob(tmp_path: Path) -> None:
    _write(tmp_path, "billing.json", {})
    _write(tmp_path, "search.json", {})
    _write(tmp_path, "notes.txt", "ignored")

    assert [p.name for p in discover_manifests(tmp_path)] == ["billing.json", "search.json"]
    assert [p.name for p in discover_manifests(tmp_path, "bill*")] == ["billing.json"]
    assert discover_manifests(tmp_path / "missing") == []


def test_decode_manifest_reads_keys_case_insensitively(tmp_path: Path) -> None:
    path = _write(tmp_path, "billing.json", {"Artifact": "https://ci.example.com/b.tgz", "revision": REVISION, "owner": "x"})
    record = decode_manifest(path)
    assert record.project == "billing"
    assert record.artifact == "https://ci.example.com/b.tgz"
    assert record.revision == REVISION
    assert record.valid is None
    assert record.need_update == {}


def test_malformed_manifest_yields_empty_record(tmp_path: Path) -> None:
    record = decode_manifest(_write(tmp_path, "broken.json", "{not json"))
    assert record.project == "broken"
    assert record.artifact == ""
    assert record.revision == ""


def test_load_packages_keeps_discovery_order(tmp_path: Path) -> None:
    for name in ["alpha", "beta", "gamma"]:
        _write(tmp_path, f"{name}.json", {"artifact": f"https://ci.example.com/{name}.zip", "revision": REVISION})
    with FuturePool(3) as pool:
        records = load_packages(discover_manifests(tmp_path), pool)
    assert [r.project for r in records] == ["alpha", "beta", "gamma"]
    assert all(r.revision == REVISION for r in records)
