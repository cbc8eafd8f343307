"""Gmarket DOM selector constants with fallbacks.

Each constant is a tuple so callers iterate until a match is found.
"""

# --- Search box on the entry page ---
SEARCH_INPUT_SELECTORS: tuple[str, ...] = (
    'input[name="keyword"]',
    "input.box__keyword-input",
)

# --- Result list containers (raced while waiting for results) ---
CONTAINER_SELECTORS: tuple[str, ...] = (
    "div.box__item-container",
    '[class*="item_list"]',
    "[data-montelena-acode]",
)

# --- One listing card ---
CARD_SELECTORS: tuple[str, ...] = (
    "div.box__item-container",
    ".box__component-itemcard",
)

# --- Listing name ---
NAME_SELECTORS: tuple[str, ...] = (
    "span.text__item",
    "a.text__item",
    '[class*="text__item"]',
)

# --- Link carrying the analytics payload ---
ANALYTICS_LINK_SELECTOR: str = "a[data-montelena-acode]"
ANALYTICS_ATTR: str = "data-params-exp"

# --- Visible prices ---
ORIGINAL_PRICE_SELECTORS: tuple[str, ...] = (
    ".box__price-original .text__value",
    '[class*="original"] .text__value',
)
SELLER_PRICE_SELECTORS: tuple[str, ...] = (
    ".box__price-seller strong.text__value",
    ".box__price-seller > strong.text__value",
)
COUPON_PRICE_SELECTORS: tuple[str, ...] = (
    ".box__price-coupon strong.text__value",
)

# --- Seller ---
SELLER_SELECTORS: tuple[str, ...] = (
    "span.text__seller",
    ".text__seller",
    ".link__shop .text__seller",
)

# --- Listing link ---
LINK_SELECTORS: tuple[str, ...] = (
    'a[href*="item.gmarket.co.kr"]',
    'a[href*="goodscode"]',
    "a.link__item",
)
