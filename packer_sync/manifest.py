from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .futures import FuturePool
from .models import PackageRecord

LOGGER = logging.getLogger(__name__)

MANIFEST_SUFFIX = ".json"


def project_from_path(path: Path) -> str:
    name = path.name
    if name.endswith(MANIFEST_SUFFIX):
        return name[: -len(MANIFEST_SUFFIX)]
    return name


def _lookup(payload: dict[str, Any], key: str) -> str:
    # Manifests written by different tools disagree on key casing.
    for name, value in payload.items():
        if str(name).lower() == key and value is not None:
            return str(value).strip()
    return ""


def discover_manifests(root: Path, project: str = "*") -> list[Path]:
    root = Path(root).expanduser()
    if not root.is_dir():
        LOGGER.warning("Manifest root %s does not exist", root)
        return []
    return sorted(path for path in root.glob(f"{project}{MANIFEST_SUFFIX}") if path.is_file())


def decode_manifest(path: Path) -> PackageRecord:
    record = PackageRecord(project=project_from_path(path), manifest_path=str(path))
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        LOGGER.error("Unable to read manifest %s: %s", path, exc)
        return record
    if not isinstance(payload, dict):
        LOGGER.error("Manifest %s is not a JSON object", path)
        return record
    record.artifact = _lookup(payload, "artifact")
    record.revision = _lookup(payload, "revision")
    return record


def load_packages(paths: list[Path], pool: FuturePool) -> list[PackageRecord]:
    futures = [pool.spawn(decode_manifest, path) for path in paths]
    pool.drain_all(f"Decoding {len(futures)} manifests")
    records: list[PackageRecord] = []
    for path, future in zip(paths, futures):
        if future.exception() is not None:
            records.append(PackageRecord(project=project_from_path(path), manifest_path=str(path)))
            continue
        records.append(future.result())
    return records
