"""Per-feed keyword and content-type filters."""

from typing import Mapping, Optional, Sequence
from feedstudio.services.feed_fetcher import ParsedItem


def passes_keyword_filter(
    item: ParsedItem, keyword_filters: Optional[Sequence[str]]
) -> bool:
    """True if no keywords are configured or any keyword occurs in the item text."""
    if not keyword_filters:
        return True

    text = f"{item.title or ''} {item.content or ''} {item.snippet or ''}".lower()
    return any(keyword.lower() in text for keyword in keyword_filters)


def passes_content_filter(
    item: ParsedItem, content_filters: Optional[Mapping[str, bool]]
) -> bool:
    """True if no content types are configured or at least one is enabled.

    The item itself is not inspected yet; per-type checks (images, video)
    would hook in here.
    """
    if not content_filters:
        return True

    return any(bool(enabled) for enabled in content_filters.values())


def passes_filters(
    item: ParsedItem,
    keyword_filters: Optional[Sequence[str]],
    content_filters: Optional[Mapping[str, bool]],
    apply_keywords: bool = True,
    apply_content: bool = True,
) -> bool:
    if apply_keywords and not passes_keyword_filter(item, keyword_filters):
        return False
    if apply_content and not passes_content_filter(item, content_filters):
        return False
    return True
