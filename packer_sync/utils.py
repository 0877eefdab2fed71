from __future__ import annotations

import getpass
import logging
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlparse


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def reset_dir(path: Path) -> Path:
    if path.exists():
        shutil.rmtree(path)
    return ensure_dir(path)


def make_run_dir(parent: Path, prefix: str = "packer-sync-") -> Path:
    return Path(tempfile.mkdtemp(prefix=prefix, dir=ensure_dir(Path(parent))))


def remove_tree(path: Path) -> bool:
    if not path.exists():
        return False
    shutil.rmtree(path)
    return True


def filename_from_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.path:
        name = Path(parsed.path).name
        if name:
            return name
    return "download.dat"


def current_username() -> str:
    return getpass.getuser()
