"""Site-blocking filter for the browser-extension companion.

A plain allow/deny matcher: while blocking is on, a request is denied when its
hostname contains the normalised url of a blocked website.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence
from urllib.parse import urlparse

logger = logging.getLogger("tasko_focus.blocking")

SCHEME_PATTERN = re.compile(r"^https?://")
WWW_PATTERN = re.compile(r"^www\.")

RUNNING_STATUS = "running"


@dataclass(frozen=True)
class BlockedResource:
    id: str
    url: str
    name: str = ""
    type: str = "website"  # 'website' or 'application'

    def to_dict(self) -> dict:
        return {"id": self.id, "url": self.url, "name": self.name, "type": self.type}


def normalize_host(url: str) -> str:
    """Lower-case and strip the scheme and a leading 'www.'."""
    value = SCHEME_PATTERN.sub("", url.strip().lower())
    return WWW_PATTERN.sub("", value)


def _request_host(url: str) -> str | None:
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    return WWW_PATTERN.sub("", host.lower())


class SiteBlocker:
    """Holds the current blocked resources and whether blocking is active."""

    def __init__(self):
        self._resources: tuple[BlockedResource, ...] = ()
        self._is_blocking: bool = False

    @property
    def is_blocking(self) -> bool:
        return self._is_blocking

    @property
    def resources(self) -> tuple[BlockedResource, ...]:
        return self._resources

    def update(self, resources: Iterable[BlockedResource], is_blocking: bool) -> None:
        self._resources = tuple(resources)
        self._is_blocking = is_blocking
        logger.info(f"Blocking: {'on' if is_blocking else 'off'}, {len(self._resources)} resources")

    def is_blocked(self, url: str) -> bool:
        if not self._is_blocking:
            return False
        host = _request_host(url)
        if host is None:
            return False
        for resource in self._resources:
            if resource.type != "website":
                continue
            pattern = normalize_host(resource.url)
            if pattern and pattern in host:
                return True
        return False


def collect_blocking_update(
    tasks: Sequence[Mapping],
    resources: Sequence[BlockedResource],
) -> dict:
    """Build the {resources, isBlocking} message from task records.

    Only tasks whose timerStatus is 'running' contribute their blocked_resources.
    """
    wanted: set[str] = set()
    for task in tasks:
        if task.get("timerStatus") != RUNNING_STATUS:
            continue
        wanted.update(task.get("blocked_resources") or [])

    if not wanted:
        return {"resources": [], "isBlocking": False}

    matched = [resource for resource in resources if resource.id in wanted]
    return {"resources": matched, "isBlocking": True}
