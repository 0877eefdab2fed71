from __future__ import annotations

from collections import Counter
from typing import Any, Iterable

from .models import PackageRecord
from .utils import now_utc_iso


def build_sync_report(records: Iterable[PackageRecord], clusters: tuple[str, ...]) -> dict[str, Any]:
    lines: list[dict[str, Any]] = []
    by_cluster: Counter[str] = Counter()
    failed_by_cluster: Counter[str] = Counter()
    for record in records:
        if not record.valid:
            continue
        for cluster in record.stale_clusters(clusters):
            ok = bool(record.updated.get(cluster, False))
            lines.append(
                {
                    "project": record.project,
                    "cluster": cluster,
                    "revision": record.revision,
                    "updated": ok,
                    "attempted": cluster in record.updated,
                }
            )
            if ok:
                by_cluster[cluster] += 1
            else:
                failed_by_cluster[cluster] += 1
    return {
        "generated_at": now_utc_iso(),
        "lines": lines,
        "counts": {
            "attempted": len(lines),
            "updated": sum(by_cluster.values()),
            "failed": sum(failed_by_cluster.values()),
        },
        "updated_by_cluster": dict(sorted(by_cluster.items())),
        "failed_by_cluster": dict(sorted(failed_by_cluster.items())),
    }


def format_report_line(line: dict[str, Any]) -> str:
    verdict = "was updated successfully" if line["updated"] else "was NOT updated successfully"
    return f"{line['project']}: {line['cluster']} {verdict}"


def format_sync_report(report: dict[str, Any]) -> str:
    lines = []
    lines.append("Packer Sync Report")
    lines.append("==================")
    if report.get("generated_at"):
        lines.append(f"Generated: {report['generated_at']}")
    lines.append("Counts: attempted={attempted} updated={updated} failed={failed}".format(**report["counts"]))
    lines.append("")
    if report["lines"]:
        for line in report["lines"]:
            lines.append(f"- {format_report_line(line)}")
    else:
        lines.append("- nothing to update")
    return "\n".join(lines) + "\n"


def build_plan_report(records: Iterable[PackageRecord], clusters: tuple[str, ...]) -> dict[str, Any]:
    packages: list[dict[str, Any]] = []
    invalid: list[str] = []
    for record in records:
        if not record.valid:
            invalid.append(record.project)
            continue
        packages.append(
            {
                "project": record.project,
                "revision": record.revision,
                "stale": record.stale_clusters(clusters),
                "current": [c for c in clusters if c in record.need_update and not record.need_update[c]],
            }
        )
    return {"generated_at": now_utc_iso(), "packages": packages, "invalid": sorted(invalid)}


def format_plan_report(report: dict[str, Any]) -> str:
    lines = ["Packer Sync Plan", "================"]
    for item in report["packages"]:
        stale = ", ".join(item["stale"]) or "none"
        lines.append(f"- {item['project']} ({item['revision'] or 'no revision'}): needs update in {stale}")
    if report["invalid"]:
        lines.append("\nInvalid packages:")
        for project in report["invalid"]:
            lines.append(f"- {project}")
    return "\n".join(lines) + "\n"
