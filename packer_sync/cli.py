from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import requests

from . import __version__
from .config import apply_cli_overrides, load_config, load_list_from_value, settings_from_config
from .downloader import ArtifactDownloader
from .futures import FuturePool
from .manifest import discover_manifests, load_packages
from .models import SyncSettings
from .pipeline import SyncAborted, run_sync
from .report import format_plan_report, format_sync_report
from .store import PackerStore
from .utils import setup_logging
from .validator import ArtifactProbe

LOGGER = logging.getLogger(__name__)


def _selection_overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "paths": {
            "manifest_root": str(args.root) if args.root else None,
        },
        "selection": {
            "project": args.project,
        },
    }


def _open_session(settings: SyncSettings) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": settings.user_agent})
    return session


def _create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="packer-sync")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sync = sub.add_parser("sync", help="Validate, download and upload stale packages to every cluster")
    sync.add_argument("--config", type=Path)
    sync.add_argument("--root", type=Path, help="Directory holding <project>.json manifests")
    sync.add_argument("--project", default=None, help="Project name or glob (default: *)")
    sync.add_argument("--clusters", default=None, help="Comma list or file of cluster names")
    sync.add_argument("--download-dir", type=Path)
    sync.add_argument("--user", default=None, help="Uploading principal (default: current OS user)")
    sync.add_argument("--max-workers", type=int, default=None)
    sync.add_argument("--dry-run", action="store_true", help="Stop after checking which clusters are stale")
    sync.add_argument("--progress", action="store_true")

    listing = sub.add_parser("list", help="Decode manifests without contacting the network")
    listing.add_argument("--config", type=Path)
    listing.add_argument("--root", type=Path)
    listing.add_argument("--project", default=None)

    return parser


def _command_sync(args: argparse.Namespace, cfg: dict[str, Any]) -> int:
    cfg = apply_cli_overrides(cfg, _selection_overrides(args))
    cfg = apply_cli_overrides(
        cfg,
        {
            "paths": {"download_dir": str(args.download_dir) if args.download_dir else None},
            "store": {
                "clusters": load_list_from_value(args.clusters) or None,
                "user": args.user,
            },
            "runtime": {
                "max_workers": args.max_workers,
                "progress": True if args.progress else None,
            },
        },
    )
    settings = settings_from_config(cfg, dry_run=args.dry_run)

    session = _open_session(settings)
    probe = ArtifactProbe(session, settings.acceptable_mime_types, timeout_sec=settings.timeout_sec)
    store = PackerStore(binary=settings.store_binary, role=settings.store_role)
    downloader = ArtifactDownloader(
        session,
        timeout_sec=settings.timeout_sec,
        chunk_size=settings.chunk_size,
    )

    try:
        with FuturePool(settings.max_workers, progress=settings.progress) as pool:
            result = run_sync(settings, pool=pool, probe=probe, store=store, downloader=downloader)
    except SyncAborted as exc:
        LOGGER.critical("%s", exc)
        return 1
    finally:
        session.close()

    if result.status == "completed":
        print(format_sync_report(result.report), end="")
    elif result.status == "dry_run":
        print(format_plan_report(result.report), end="")
    else:
        print("All packages are up to date")
    return 0


def _command_list(args: argparse.Namespace, cfg: dict[str, Any]) -> int:
    cfg = apply_cli_overrides(cfg, _selection_overrides(args))
    root = Path(str(cfg["paths"]["manifest_root"])).expanduser()
    paths = discover_manifests(root, str(cfg["selection"]["project"]))
    if not paths:
        print(f"No manifests found under {root}")
        return 1
    with FuturePool(int(cfg["runtime"]["max_workers"])) as pool:
        records = load_packages(paths, pool)
    for record in records:
        print(f"{record.project}\t{record.revision or '-'}\t{record.artifact or '-'}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _create_parser()
    args = parser.parse_args(argv)

    try:
        cfg = load_config(getattr(args, "config", None))
    except (FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))
        return 2
    setup_logging(cfg.get("runtime", {}).get("log_level", "INFO"))

    try:
        if args.cmd == "sync":
            return _command_sync(args, cfg)
        if args.cmd == "list":
            return _command_list(args, cfg)
    except ValueError as exc:
        parser.error(str(exc))
        return 2

    parser.error(f"Unhandled command: {args.cmd}")
    return 2


def _single_command_main(cmd: str) -> int:
    return main([cmd, *sys.argv[1:]])


def main_sync() -> int:
    return _single_command_main("sync")


if __name__ == "__main__":
    raise SystemExit(main())
