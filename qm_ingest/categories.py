"""
Campaign category configuration: parsing, fetching and a refreshable snapshot.

The reporting API serves categories as::

    {"campaignId": "<id>", "categories": {"open": [...], "success": [...], "declined": [...]}}

either per campaign or once for ``"all"``. ``parse_categories_payload`` also
accepts a list of those objects and a plain ``{campaignId: {...}}`` mapping.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional
from urllib.parse import quote

import requests

from qm_ingest.config import DEFAULT_CATEGORIES_TTL
from qm_ingest.errors import ConfigError, NetworkError
from qm_ingest.models import CampaignCategories

logger = logging.getLogger(__name__)

CATEGORIES_ENDPOINT = "/api/campaign-categories"
ALL_CAMPAIGNS = "all"

CategoryMap = Mapping[str, CampaignCategories]


def _entry(item: Mapping[str, Any]) -> tuple[str, CampaignCategories]:
    campaign_id = str(item.get("campaignId") or ALL_CAMPAIGNS)
    categories = item.get("categories") or {}
    if not isinstance(categories, Mapping):
        raise ValueError(f"categories for campaign {campaign_id!r} must be an object")
    return campaign_id, CampaignCategories.from_dict(categories)


def parse_categories_payload(payload: Any) -> dict[str, CampaignCategories]:
    if isinstance(payload, list):
        return dict(_entry(item) for item in payload if isinstance(item, Mapping))
    if not isinstance(payload, Mapping):
        raise ValueError(f"Category payload must be an object or a list, got {type(payload).__name__}")
    if "categories" in payload:
        campaign_id, categories = _entry(payload)
        return {campaign_id: categories}
    return {
        str(campaign_id): CampaignCategories.from_dict(categories)
        for campaign_id, categories in payload.items()
        if isinstance(categories, Mapping)
    }


def load_categories_file(path: "str | Path") -> dict[str, CampaignCategories]:
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Categories file not found: {path}")
    try:
        return parse_categories_payload(json.loads(path.read_text(encoding="utf-8")))
    except (ValueError, TypeError) as exc:
        raise ConfigError(f"Could not read categories file {path}: {exc}") from exc


def fetch_campaign_categories(
    base_url: str,
    campaign_id: Optional[str] = None,
    *,
    session=None,
    timeout: float = 30.0,
) -> dict[str, CampaignCategories]:
    url = base_url.rstrip("/") + CATEGORIES_ENDPOINT
    if campaign_id:
        url += "/" + quote(campaign_id, safe="")

    http = session if session is not None else requests
    try:
        response = http.get(url, timeout=timeout)
    except requests.RequestException as exc:
        raise NetworkError(f"Request to {url} failed: {exc}", url=url) from exc
    if response.status_code >= 400:
        raise NetworkError(
            f"Failed to fetch campaign categories: HTTP {response.status_code}",
            status_code=response.status_code,
            url=url,
        )
    try:
        return parse_categories_payload(response.json())
    except ValueError as exc:
        raise NetworkError(f"Invalid category payload from {url}: {exc}", status_code=response.status_code, url=url) from exc


@dataclass(frozen=True)
class CategorySnapshot:
    version: int
    fetched_at: float
    categories: CategoryMap = field(default_factory=dict)

    def scoped(self, campaign_ids: Iterable[str]) -> dict[str, CampaignCategories]:
        """Categories for ``campaign_ids`` only, in the order given.

        A snapshot holding just the aggregate "all" entry serves it for every id.
        """
        scoped: dict[str, CampaignCategories] = {}
        shared = self.categories.get(ALL_CAMPAIGNS)
        for campaign_id in campaign_ids:
            categories = self.categories.get(campaign_id, shared)
            if categories is not None:
                scoped[campaign_id] = categories
        return scoped


class CategoryCache:
    """
    Holds the latest category snapshot and refreshes it once ``ttl`` expires.

    Readers get an immutable snapshot; refreshes build a new one and swap the
    reference under a lock. A failed refresh keeps the previous snapshot.
    """

    def __init__(
        self,
        loader: Callable[[], Mapping[str, CampaignCategories]],
        ttl: float = DEFAULT_CATEGORIES_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: Optional[CategorySnapshot] = None

    @classmethod
    def from_url(cls, base_url: str, ttl: float = DEFAULT_CATEGORIES_TTL, session=None) -> "CategoryCache":
        return cls(lambda: fetch_campaign_categories(base_url, session=session), ttl=ttl)

    def _is_fresh(self, snapshot: Optional[CategorySnapshot]) -> bool:
        return snapshot is not None and self._clock() - snapshot.fetched_at < self._ttl

    def refresh(self) -> CategorySnapshot:
        with self._lock:
            previous = self._snapshot
            try:
                loaded = self._loader()
            except Exception as exc:
                if previous is None:
                    raise
                logger.error("Category refresh failed, keeping version %d: %s", previous.version, exc)
                return previous
            snapshot = CategorySnapshot(
                version=(previous.version + 1) if previous else 1,
                fetched_at=self._clock(),
                categories=MappingProxyType(dict(loaded)),
            )
            self._snapshot = snapshot
            logger.debug("Loaded category snapshot v%d (%d campaigns)", snapshot.version, len(loaded))
            return snapshot

    def snapshot(self) -> CategorySnapshot:
        current = self._snapshot
        if self._is_fresh(current):
            return current
        return self.refresh()

    def scoped(self, campaign_ids: Iterable[str]) -> dict[str, CampaignCategories]:
        return self.snapshot().scoped(campaign_ids)
