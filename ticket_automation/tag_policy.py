"""Turn an analysis into the ordered tag list proposed for a ticket."""
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List

from .rules import NORMAL_PRIORITY

if TYPE_CHECKING:  # pragma: no cover
    from .analysis import Analysis

PROCESSED_TAG = "auto-processed"
ANALYSIS_FAILED_TAG = "analysis-failed"

CATEGORY_TAG_THRESHOLD = 0.3
PRIORITY_TAG_THRESHOLD = 0.5
SENTIMENT_TAG_THRESHOLD = 0.4
PRODUCT_TAG_THRESHOLD = 0.3
SECONDARY_TAG_THRESHOLD = 0.6

SECONDARY_TAGS: Dict[str, str] = {
    "technical": "needs-technical-review",
    "billing": "billing-inquiry",
    "feature_request": "feature-request",
    "account": "account-management",
}


def generate_tags(analysis: "Analysis") -> List[str]:
    """Return the tags for ``analysis``, in emission order and without duplicates."""
    tags: List[str] = [PROCESSED_TAG]

    top_category = analysis.top_category
    if top_category and top_category.confidence > CATEGORY_TAG_THRESHOLD:
        tags.append(f"category-{top_category.category}")

    priority = analysis.priority
    if priority.level != NORMAL_PRIORITY and priority.confidence > PRIORITY_TAG_THRESHOLD:
        tags.append(f"priority-{priority.level}")

    sentiment = analysis.sentiment
    if sentiment.sentiment != "neutral" and sentiment.confidence > SENTIMENT_TAG_THRESHOLD:
        tags.append(f"sentiment-{sentiment.sentiment}")

    top_product = analysis.top_product
    if top_product and top_product.confidence > PRODUCT_TAG_THRESHOLD:
        tags.append(f"product-{top_product.product}")

    for category in analysis.categories:
        if category.confidence > SECONDARY_TAG_THRESHOLD:
            secondary = SECONDARY_TAGS.get(category.category)
            if secondary:
                tags.append(secondary)

    return list(dict.fromkeys(tags))
