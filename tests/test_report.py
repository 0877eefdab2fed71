from packer_sync.models import PackageRecord
from packer_sync.report import build_plan_report, build_sync_report, format_plan_report, format_sync_report

CLUSTERS = ("atla", "smf1")


def test_sync_report_only_lists_stale_clusters_of_valid_packages() -> None:
    records = [
        PackageRecord(
            project="billing",
            valid=True,
            need_update={"atla": True, "smf1": False},
            updated={"atla": True},
        ),
        PackageRecord(
            project="search",
            valid=True,
            need_update={"atla": True, "smf1": True},
            updated={"atla": False},
        ),
        PackageRecord(project="broken", valid=False),
    ]
    report = build_sync_report(records, CLUSTERS)

    assert [(line["project"], line["cluster"], line["updated"]) for line in report["lines"]] == [
        ("billing", "atla", True),
        ("search", "atla", False),
        ("search", "smf1", False),
    ]
    assert report["lines"][2]["attempted"] is False
    assert report["counts"] == {"attempted": 3, "updated": 1, "failed": 2}
    assert report["failed_by_cluster"] == {"atla": 1, "smf1": 1}

    text = format_sync_report(report)
    assert "- billing: atla was updated successfully" in text
    assert "- search: smf1 was NOT updated successfully" in text


def test_empty_sync_report_says_nothing_to_update() -> None:
    assert "- nothing to update" in format_sync_report(build_sync_report([], CLUSTERS))


def test_plan_report_splits_stale_and_invalid() -> None:
    records = [
        PackageRecord(project="billing", revision="r1", valid=True, need_update={"atla": False, "smf1": True}),
        PackageRecord(project="broken", valid=False),
    ]
    report = build_plan_report(records, CLUSTERS)

    assert report["packages"] == [{"project": "billing", "revision": "r1", "stale": ["smf1"], "current": ["atla"]}]
    assert report["invalid"] == ["broken"]
    text = format_plan_report(report)
    assert "- billing (r1): needs update in smf1" in text
    assert "- broken" in text
