from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

LOGGER = logging.getLogger(__name__)

# A revision is a whole token of exactly 40 lowercase hex characters; longer hex
# runs and identifiers that merely contain one are not revisions.
REVISION_TOKEN = re.compile(r"(?<![0-9A-Za-z])[0-9a-f]{40}(?![0-9A-Za-z])")

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


@dataclass(frozen=True, slots=True)
class StoreResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def error_text(self) -> str:
        text = (self.stderr or self.stdout).strip()
        return text or f"exit status {self.returncode}"


@dataclass(frozen=True, slots=True)
class RevisionCheck:
    needs_update: bool
    latest: str | None
    message: str


def parse_revisions(output: str) -> list[str]:
    """Return revision tokens in the order the store printed them (oldest first)."""
    return REVISION_TOKEN.findall(output or "")


class PackerStore:
    """Thin wrapper around the versioned-artifact store's command-line tool."""

    def __init__(self, binary: str = "aurora", role: str = "jenkins", runner: Runner | None = None) -> None:
        self.binary = binary
        self.role = role
        self._runner = runner or subprocess.run

    def _run(self, args: list[str]) -> StoreResult:
        argv = [self.binary, *args]
        try:
            completed = self._runner(argv, check=False, capture_output=True, text=True)
        except OSError as exc:
            return StoreResult(tuple(argv), 127, "", str(exc))
        return StoreResult(tuple(argv), completed.returncode, completed.stdout or "", completed.stderr or "")

    def package_versions(self, cluster: str, project: str) -> StoreResult:
        return self._run(["package_versions", f"--cluster={cluster}", self.role, project])

    def add_version(self, cluster: str, project: str, local_file: Path, metadata: str, user: str) -> StoreResult:
        return self._run(
            [
                "package_add_version",
                f"--cluster={cluster}",
                f"--metadata={metadata}",
                user,
                project,
                str(local_file),
            ]
        )

    def check_revision(self, cluster: str, project: str, revision: str) -> RevisionCheck:
        result = self.package_versions(cluster, project)
        if not result.ok:
            return RevisionCheck(True, None, result.error_text)
        revisions = parse_revisions(result.stdout)
        if not revisions:
            return RevisionCheck(True, None, f"No revisions found for {project} in {cluster}")
        latest = revisions[-1]
        LOGGER.info("%s latest revision in %s: %s", project, cluster, latest)
        if latest == revision:
            return RevisionCheck(False, latest, f"{project} does not need to be updated in {cluster}")
        return RevisionCheck(True, latest, f"{project} is not up to date in {cluster}")
