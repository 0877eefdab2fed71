from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import requests

from .utils import filename_from_url, reset_dir

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DownloadOutcome:
    local_path: Path | None
    size_bytes: int | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.local_path is not None and self.error is None


class ArtifactDownloader:
    def __init__(
        self,
        session: requests.Session,
        *,
        timeout_sec: float | None = None,
        chunk_size: int = 1024 * 1024,
    ) -> None:
        self._session = session
        self.timeout_sec = timeout_sec
        self.chunk_size = max(1, chunk_size)

    def target_for(self, base_dir: Path, project: str, url: str) -> Path:
        return Path(base_dir) / project / filename_from_url(url)

    def fetch(self, project: str, url: str, base_dir: Path) -> DownloadOutcome:
        local_path = self.target_for(base_dir, project, url)
        LOGGER.info("Downloading %s to %s", url, local_path)
        try:
            reset_dir(local_path.parent)
        except OSError as exc:
            return DownloadOutcome(None, None, f"unable to prepare {local_path.parent}: {exc}")

        temp_path = local_path.with_suffix(local_path.suffix + ".part")
        try:
            with self._session.get(url, stream=True, timeout=self.timeout_sec) as resp:
                resp.raise_for_status()
                with temp_path.open("wb") as handle:
                    for chunk in resp.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            handle.write(chunk)
            os.replace(temp_path, local_path)
        except (requests.RequestException, OSError) as exc:
            temp_path.unlink(missing_ok=True)
            return DownloadOutcome(None, None, f"error while downloading {url}: {exc}")
        return DownloadOutcome(local_path, local_path.stat().st_size)
