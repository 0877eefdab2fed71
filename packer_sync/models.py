from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator


class RecordClaimError(RuntimeError):
    """Raised when two tasks in the same stage claim the same record slot."""


class RecordStateError(RuntimeError):
    """Raised when a write-once record field is written a second time."""


@dataclass(slots=True)
class PackageRecord:
    project: str
    artifact: str = ""
    revision: str = ""
    manifest_path: str | None = None
    valid: bool | None = None
    need_update: dict[str, bool] = field(default_factory=dict)
    updated: dict[str, bool] = field(default_factory=dict)
    local_file: str | None = None
    bytes_downloaded: int | None = None

    def stale_clusters(self, clusters: tuple[str, ...]) -> list[str]:
        return [cluster for cluster in clusters if self.need_update.get(cluster)]

    def needs_any_update(self, clusters: tuple[str, ...]) -> bool:
        # Only the first stale cluster matters, so stop scanning there.
        return any(self.need_update.get(cluster) for cluster in clusters)


@dataclass(frozen=True, slots=True)
class SyncSettings:
    manifest_root: Path
    project: str
    clusters: tuple[str, ...]
    download_dir: Path
    store_binary: str
    store_role: str
    upload_user: str | None
    acceptable_mime_types: frozenset[str]
    timeout_sec: float | None
    user_agent: str
    chunk_size: int
    max_workers: int
    progress: bool = False
    dry_run: bool = False


class RecordHandle:
    """Exclusive write access to one record (or one cluster slot of it) for one stage."""

    __slots__ = ("record", "stage", "cluster", "_lock")

    def __init__(
        self,
        record: PackageRecord,
        stage: str,
        lock: threading.Lock,
        cluster: str | None = None,
    ) -> None:
        self.record = record
        self.stage = stage
        self.cluster = cluster
        self._lock = lock

    @property
    def project(self) -> str:
        return self.record.project

    def set_validity(self, valid: bool) -> None:
        if self.record.valid is not None:
            raise RecordStateError(f"{self.project}: validity already set")
        self.record.valid = bool(valid)

    def set_need_update(self, need_update: dict[str, bool]) -> None:
        if self.record.need_update:
            raise RecordStateError(f"{self.project}: update need already assessed")
        self.record.need_update = dict(need_update)

    def set_local_file(self, path: Path, size_bytes: int) -> None:
        if self.record.local_file is not None:
            raise RecordStateError(f"{self.project}: artifact already downloaded")
        self.record.local_file = str(path)
        self.record.bytes_downloaded = size_bytes

    def set_updated(self, ok: bool) -> None:
        if self.cluster is None:
            raise RecordStateError(f"{self.project}: upload handle has no cluster")
        # Sibling upload tasks share this record's ``updated`` mapping.
        with self._lock:
            self.record.updated[self.cluster] = bool(ok)

    def __repr__(self) -> str:
        slot = f"{self.project}@{self.cluster}" if self.cluster else self.project
        return f"RecordHandle({slot}, stage={self.stage!r})"


class PackageArena:
    def __init__(self, records: list[PackageRecord] | None = None) -> None:
        self._records: list[PackageRecord] = list(records or [])
        self._lock = threading.Lock()
        self._stage: str | None = None
        self._claimed: set[tuple[int, str | None]] = set()

    def __iter__(self) -> Iterator[PackageRecord]:
        return iter(self._records)

    def indexed(self) -> list[tuple[int, PackageRecord]]:
        return list(enumerate(self._records))

    def begin_stage(self, stage: str) -> None:
        with self._lock:
            self._stage = stage
            self._claimed = set()

    def claim(self, index: int, cluster: str | None = None) -> RecordHandle:
        with self._lock:
            if self._stage is None:
                raise RecordClaimError("No stage is open for claims")
            slot = (index, cluster)
            if slot in self._claimed:
                label = self._records[index].project
                if cluster:
                    label = f"{label}@{cluster}"
                raise RecordClaimError(f"{label} already claimed in stage {self._stage}")
            self._claimed.add(slot)
            return RecordHandle(self._records[index], self._stage, self._lock, cluster)
