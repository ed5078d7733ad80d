"""
Outcome classification against per-campaign category lists.

Labels are compared after ``normalize_outcome`` (trim, lowercase, spaces to
underscores) on both sides, so "Kein Interesse", " kein interesse " and
"kein_interesse" are the same label.

Campaigns are checked in mapping order and the first campaign that knows the
label decides. Two campaigns can file the same label differently; pass a map
scoped to the relevant campaign(s) when that matters.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from qm_ingest.models import CampaignCategories, normalize_outcome

logger = logging.getLogger(__name__)

POSITIVE = "positive"
NEGATIVE = "negative"
OFFEN = "offen"
OUTCOME_BUCKETS = (POSITIVE, NEGATIVE, OFFEN)


def _as_campaign(categories: Any) -> CampaignCategories:
    if isinstance(categories, CampaignCategories):
        return categories
    if isinstance(categories, Mapping):
        return CampaignCategories.from_dict(categories)
    return CampaignCategories()


def classify_outcome(label: Any, categories: Mapping[str, Any]) -> str:
    """Return "positive", "negative" or "offen" for ``label``.

    ``categories`` maps campaign ids to either ``CampaignCategories`` or plain
    dicts with ``open`` / ``success`` / ``declined`` lists. Unknown labels and
    an empty mapping both yield "offen".
    """
    if not categories:
        return OFFEN

    normalized = normalize_outcome(label)
    for entry in categories.values():
        campaign = _as_campaign(entry)
        if normalized in campaign.success_keys:
            return POSITIVE
        if normalized in campaign.declined_keys:
            return NEGATIVE
        if normalized in campaign.open_keys:
            return OFFEN

    logger.debug("Outcome %r not configured in %d campaign(s); treating as open", label, len(categories))
    return OFFEN


def classify_many(labels: Iterable[Any], categories: Mapping[str, Any]) -> dict[str, str]:
    return {str(label): classify_outcome(label, categories) for label in labels}
