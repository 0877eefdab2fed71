from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProbeResult:
    valid: bool
    content_type: str | None
    reason: str


def media_type(header: str | None) -> str:
    return (header or "").split(";", 1)[0].strip().lower()


class ArtifactProbe:
    def __init__(
        self,
        session: requests.Session,
        acceptable_mime_types: frozenset[str],
        *,
        timeout_sec: float | None = None,
    ) -> None:
        self._session = session
        self.acceptable_mime_types = frozenset(m.lower() for m in acceptable_mime_types)
        self.timeout_sec = timeout_sec

    def check(self, url: str) -> ProbeResult:
        if not url:
            return ProbeResult(False, None, "no artifact url")
        try:
            # Only the headers matter; the body is never read.
            with self._session.get(url, stream=True, timeout=self.timeout_sec) as resp:
                content_type = media_type(resp.headers.get("content-type"))
        except requests.RequestException as exc:
            return ProbeResult(False, None, f"probe failed: {exc}")
        if content_type in self.acceptable_mime_types:
            return ProbeResult(True, content_type, "acceptable content type")
        return ProbeResult(False, content_type or None, f"unacceptable content type {content_type or 'none'!r}")
