from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from . import __version__
from .models import SyncSettings

DEFAULT_CONFIG: dict[str, Any] = {
    "paths": {
        "manifest_root": "~/workspace/revenue-deploy/config",
        # Relative to the working directory when not absolute.
        "download_dir": "downloads_tmp",
    },
    "selection": {
        "project": "*",
    },
    "store": {
        "binary": "aurora",
        "role": "jenkins",
        "clusters": ["atla", "smf1"],
        # Defaults to the current OS user when null.
        "user": None,
    },
    "http": {
        "timeout_sec": None,
        "user_agent": f"packer-sync/{__version__}",
        "chunk_size": 1024 * 1024,
    },
    "validation": {
        "acceptable_mime_types": [
            "application/x-compressed",
            "application/x-gzip",
            "application/zip",
        ],
    },
    "runtime": {
        "max_workers": 8,
        "log_level": "INFO",
        "progress": False,
    },
}


def _deep_update(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_path: str | Path | None) -> dict[str, Any]:
    cfg = json.loads(json.dumps(DEFAULT_CONFIG))
    if not config_path:
        return cfg
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    if not isinstance(payload, dict):
        raise ValueError("Config root must be a mapping")
    _deep_update(cfg, payload)
    return cfg


def apply_cli_overrides(cfg: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    def _drop_none(value: Any) -> Any:
        if isinstance(value, dict):
            return {k: _drop_none(v) for k, v in value.items() if v is not None}
        if isinstance(value, list):
            return [_drop_none(v) for v in value if v is not None]
        return value

    cleaned = _drop_none(overrides)
    _deep_update(cfg, cleaned)
    return cfg


def _clean_names(values: Any) -> list[str]:
    names: list[str] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            names.extend(_clean_names(value))
        elif value is not None and str(value).strip():
            names.append(str(value).strip())
    return names


def _names_from_file(path: Path) -> list[str]:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml", ".json"}:
        payload = json.loads(text) if suffix == ".json" else yaml.safe_load(text)
        if isinstance(payload, dict):
            return _clean_names(payload.values())
        if isinstance(payload, list):
            return _clean_names(payload)
    return [line.strip() for line in text.splitlines() if line.strip() and not line.strip().startswith("#")]


def load_list_from_value(value: Any) -> list[str]:
    """Cluster names from a list, a comma separated string, or a file of names."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return _clean_names(value)
    if isinstance(value, str):
        path = Path(value)
        if path.is_file():
            return _names_from_file(path)
        return [s.strip() for s in value.split(",") if s.strip()]
    return [str(value).strip()]


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def settings_from_config(cfg: dict[str, Any], *, dry_run: bool = False) -> SyncSettings:
    paths = cfg.get("paths") or {}
    store = cfg.get("store") or {}
    http = cfg.get("http") or {}
    runtime = cfg.get("runtime") or {}

    clusters = tuple(dict.fromkeys(load_list_from_value(store.get("clusters"))))
    if not clusters:
        raise ValueError("At least one cluster is required: set store.clusters or pass --clusters")

    mime_types = load_list_from_value((cfg.get("validation") or {}).get("acceptable_mime_types"))
    if not mime_types:
        raise ValueError("validation.acceptable_mime_types must not be empty")

    download_dir = Path(str(paths.get("download_dir") or "downloads_tmp")).expanduser()
    if not download_dir.is_absolute():
        download_dir = Path.cwd() / download_dir

    return SyncSettings(
        manifest_root=Path(str(paths.get("manifest_root") or ".")).expanduser(),
        project=str((cfg.get("selection") or {}).get("project") or "*"),
        clusters=clusters,
        download_dir=download_dir,
        store_binary=str(store.get("binary") or "aurora"),
        store_role=str(store.get("role") or "jenkins"),
        upload_user=store.get("user") or None,
        acceptable_mime_types=frozenset(m.lower() for m in mime_types),
        timeout_sec=_optional_float(http.get("timeout_sec")),
        user_agent=str(http.get("user_agent") or f"packer-sync/{__version__}"),
        chunk_size=int(http.get("chunk_size") or 1024 * 1024),
        max_workers=max(1, int(runtime.get("max_workers") or 1)),
        progress=bool(runtime.get("progress", False)),
        dry_run=dry_run,
    )
