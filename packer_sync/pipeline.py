from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from .downloader import DownloadOutcome
from .futures import FuturePool
from .manifest import discover_manifests, load_packages
from .models import PackageArena, PackageRecord, RecordHandle, SyncSettings
from .report import build_plan_report, build_sync_report, format_report_line
from .store import RevisionCheck, StoreResult
from .utils import current_username, make_run_dir, remove_tree
from .validator import ProbeResult

LOGGER = logging.getLogger(__name__)

STAGE_VALIDATE = "validate"
STAGE_ASSESS = "assess"
STAGE_DOWNLOAD = "download"
STAGE_UPLOAD = "upload"


class SyncAborted(RuntimeError):
    """The run cannot do any useful work."""


class NoPackagesFound(SyncAborted):
    pass


class NoValidPackages(SyncAborted):
    pass


class UnknownUploadUser(SyncAborted):
    pass


class DownloadDirUnavailable(SyncAborted):
    pass


class Probe(Protocol):
    def check(self, url: str) -> ProbeResult: ...


class Store(Protocol):
    def check_revision(self, cluster: str, project: str, revision: str) -> RevisionCheck: ...

    def add_version(self, cluster: str, project: str, local_file: Path, metadata: str, user: str) -> StoreResult: ...


class Downloader(Protocol):
    def fetch(self, project: str, url: str, base_dir: Path) -> DownloadOutcome: ...


@dataclass(slots=True)
class SyncResult:
    status: str
    records: list[PackageRecord]
    report: dict[str, Any] = field(default_factory=dict)
    downloads: int = 0
    uploads: int = 0


def _validate_one(handle: RecordHandle, probe: Probe) -> RecordHandle:
    valid = False
    try:
        result = probe.check(handle.record.artifact)
        valid = result.valid
        if valid:
            LOGGER.info("%s is valid (%s)", handle.project, result.content_type)
        else:
            LOGGER.warning("%s is not valid: %s", handle.project, result.reason)
    finally:
        handle.set_validity(valid)
    return handle


def _assess_one(handle: RecordHandle, store: Store, clusters: tuple[str, ...]) -> RecordHandle:
    record = handle.record
    need_update: dict[str, bool] = {}
    # Clusters are queried one after another; this task is the only writer.
    for cluster in clusters:
        try:
            check = store.check_revision(cluster, record.project, record.revision)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("%s: revision query failed in %s: %s", record.project, cluster, exc)
            need_update[cluster] = True
            continue
        LOGGER.info("Packer status: %s", check.message)
        need_update[cluster] = check.needs_update
    handle.set_need_update(need_update)
    return handle


def _download_one(handle: RecordHandle, downloader: Downloader, run_dir: Path) -> RecordHandle:
    record = handle.record
    outcome = downloader.fetch(record.project, record.artifact, run_dir)
    if not outcome.ok or outcome.local_path is None:
        LOGGER.error("%s: %s", record.project, outcome.error or "download failed")
        return handle
    handle.set_local_file(outcome.local_path, outcome.size_bytes or 0)
    LOGGER.info("%s bytes downloaded for %s", outcome.size_bytes, record.project)
    return handle


def _upload_one(handle: RecordHandle, store: Store, user: str) -> RecordHandle:
    record = handle.record
    cluster = handle.cluster or ""
    ok = False
    try:
        if not record.local_file:
            LOGGER.error("%s: skipping upload to %s, artifact was not downloaded", record.project, cluster)
            return handle
        LOGGER.info("%s: uploading %s to %s packer in %s", record.project, record.local_file, user, cluster)
        result = store.add_version(cluster, record.project, Path(record.local_file), record.revision, user)
        ok = result.ok
        if ok:
            LOGGER.info("%s: %s", record.project, result.stdout.strip())
        else:
            LOGGER.error("%s: error: %s", record.project, result.error_text)
    finally:
        handle.set_updated(ok)
    return handle


def validate_packages(arena: PackageArena, pool: FuturePool, probe: Probe) -> int:
    arena.begin_stage(STAGE_VALIDATE)
    spawned = 0
    for index, _record in arena.indexed():
        pool.spawn(_validate_one, arena.claim(index), probe)
        spawned += 1
    pool.drain_all("Checking validity of packages")
    return spawned


def assess_packages(arena: PackageArena, pool: FuturePool, store: Store, clusters: tuple[str, ...]) -> int:
    arena.begin_stage(STAGE_ASSESS)
    spawned = 0
    for index, record in arena.indexed():
        if not record.valid:
            continue
        pool.spawn(_assess_one, arena.claim(index), store, clusters)
        spawned += 1
    if spawned:
        pool.drain_all("Checking which packer clusters need to be updated")
    return spawned


def download_packages(
    arena: PackageArena,
    pool: FuturePool,
    downloader: Downloader,
    clusters: tuple[str, ...],
    run_dir: Path,
) -> int:
    arena.begin_stage(STAGE_DOWNLOAD)
    spawned = 0
    for index, record in arena.indexed():
        if not record.valid or not record.needs_any_update(clusters):
            continue
        LOGGER.info("%s: needs update", record.project)
        pool.spawn(_download_one, arena.claim(index), downloader, run_dir)
        spawned += 1
    if spawned:
        pool.drain_all("Downloading packages")
    return spawned


def upload_packages(
    arena: PackageArena, pool: FuturePool, store: Store, clusters: tuple[str, ...], user: str
) -> int:
    arena.begin_stage(STAGE_UPLOAD)
    spawned = 0
    for index, record in arena.indexed():
        if not record.valid:
            continue
        for cluster in record.stale_clusters(clusters):
            pool.spawn(_upload_one, arena.claim(index, cluster), store, user)
            spawned += 1
    pool.drain_all("Updating packages")
    return spawned


def resolve_upload_user(configured: str | None) -> str:
    if configured:
        return configured
    try:
        return current_username()
    except (OSError, KeyError) as exc:
        raise UnknownUploadUser(
            f"Unable to determine the uploading user ({exc}); set store.user or pass --user"
        ) from exc


def run_sync(
    settings: SyncSettings,
    *,
    pool: FuturePool,
    probe: Probe,
    store: Store,
    downloader: Downloader,
) -> SyncResult:
    clusters = settings.clusters
    # The uploading user must be known before any stage runs.
    user = None if settings.dry_run else resolve_upload_user(settings.upload_user)
    paths = discover_manifests(settings.manifest_root, settings.project)
    if not paths:
        raise NoPackagesFound(
            f"No packages found matching {settings.manifest_root / (settings.project + '.json')}"
        )

    arena = PackageArena(load_packages(paths, pool))
    LOGGER.info("Starting projects: %s", ", ".join(record.project for record in arena))

    validate_packages(arena, pool, probe)
    if not any(record.valid for record in arena):
        raise NoValidPackages("Unable to process any projects!")

    assess_packages(arena, pool, store, clusters)
    records = list(arena)
    if settings.dry_run:
        return SyncResult("dry_run", records, build_plan_report(records, clusters))

    if not any(record.valid and record.needs_any_update(clusters) for record in arena):
        LOGGER.info("All packages are up to date. Exiting...")
        return SyncResult("up_to_date", records, build_plan_report(records, clusters))

    try:
        run_dir = make_run_dir(settings.download_dir)
    except OSError as exc:
        raise DownloadDirUnavailable(
            f"Unable to create a download directory in {settings.download_dir}: {exc}"
        ) from exc
    LOGGER.info("Downloading into %s", run_dir)
    try:
        downloads = download_packages(arena, pool, downloader, clusters, run_dir)
        # Any download implies at least one stale cluster, so there is always upload work.
        uploads = upload_packages(arena, pool, store, clusters, user or "")
        report = build_sync_report(records, clusters)
        for line in report["lines"]:
            LOGGER.info(format_report_line(line))
    finally:
        if remove_tree(run_dir):
            LOGGER.info("Removed download directory %s", run_dir)
    return SyncResult("completed", records, report, downloads=downloads, uploads=uploads)
