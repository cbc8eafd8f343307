"""Gmarket URL helpers.

Pure functions, no browser dependency.
"""

import logging
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

logger = logging.getLogger(__name__)

# s=1 sorts by lowest price first
SORT_PARAM = "s"
SORT_LOWEST_PRICE = "1"
CATEGORY_PARAM = "c"
CATEGORY_FILTER_PARAM = "f"


def filter_params(category_code: str) -> dict[str, str]:
    """The sort/category parameters every result page must carry."""
    return {
        SORT_PARAM: SORT_LOWEST_PRICE,
        CATEGORY_PARAM: category_code,
        CATEGORY_FILTER_PARAM: f"c:{category_code}",
    }


def is_filter_applied(url: str, category_code: str) -> bool:
    """Return True if the URL already sorts lowest-first within the category."""
    params = dict(parse_qsl(urlparse(url).query, keep_blank_values=True))
    wanted = filter_params(category_code)
    return all(params.get(k) == v for k, v in wanted.items())


def build_filtered_url(search_url: str, category_code: str) -> str:
    """Add (or overwrite) the sort and category filter on a results URL.

    Idempotent: applying it to its own output returns the same URL.
    Existing parameters such as the keyword are preserved in order.
    """
    if is_filter_applied(search_url, category_code):
        return search_url
    parsed = urlparse(search_url)
    params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    params.update(filter_params(category_code))
    query = urlencode(params, safe=":")
    return urlunparse(parsed._replace(query=query))


def normalize_listing_url(href: str | None, base_url: str) -> str:
    """Return an absolute listing URL, or "" when there is no href."""
    if not href or not href.strip():
        return ""
    href = href.strip()
    if href.startswith("//"):
        return f"https:{href}"
    return urljoin(base_url, href)
