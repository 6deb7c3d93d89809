"""Selector catalog for storefront catalog pages.

Ordered lists are tried first-to-last; earlier entries are more specific.
"""

# Items
PRIMARY_ITEM_SELECTOR = 'a[data-testid^="store-item-"]'
FALLBACK_ITEM_SELECTOR = 'a[data-testid*="store-item"], a[href*="/store/"]'

# Anything that looks purchasable, used to validate section candidates
ITEM_LIKE_SELECTOR = 'a[href*="/store/"], a[href*="item"], .menu-item, .item'

# Items inside a known item container
CONTAINER_ITEM_SELECTOR = 'a[data-testid^="store-item-"], a[data-testid*="store-item"], a[href*="/store/"]'

# Page readiness
CONTENT_SELECTORS = [
    'li[data-testid="store-catalog-subsection-container"]',
    'a[data-testid^="store-item-"]',
    '[data-testid="rich-text"]',
    'main section',
    '.menu-item',
    '.category',
    'section',
]

CONTENT_PROBE_SELECTORS = [
    'li[data-testid="store-catalog-subsection-container"]',
    'a[data-testid^="store-item-"]',
    '[data-testid="rich-text"]',
    'main section',
]

STORE_NAME_SELECTORS = [
    "header h1",
    '[data-testid="rich-text"] h1',
    "h1",
    ".store-name",
    ".restaurant-name",
]

COOKIE_BUTTON_SELECTORS = [
    "button:has-text('Accept all')",
    "button:has-text('Accept All')",
    "button:has-text('Accept')",
    "button:has-text('I agree')",
    "button:has-text('Allow all')",
    "button:has-text('Got it')",
]

SEE_MORE_SELECTORS = [
    "button:has-text('See more')",
    "button:has-text('Ver más')",
    "button:has-text('More')",
]

MODAL_CLOSE_SELECTOR = "[aria-label='Close'], button:has-text('Close')"

# Sections, strict to loose
SECTION_SELECTORS = [
    'li[data-testid="store-catalog-subsection-container"]',
    'h3[data-testid*="rich-text"]',
    'div[data-testid="catalog-section-header"]',
    'div[data-testid="catalog-section-title"]',
    '[data-testid*="subsection"]',
    '[data-testid*="section"]',
    'section',
    '.menu-section',
    '.category-section',
]

SECTION_CONTAINER_SELECTOR = 'div, section, li'
MIN_ITEMS_PER_CONTAINER = 3

CATEGORY_HEADER_SELECTORS = [
    'h3[data-testid*="rich-text"]',
    'h3',
    'div[data-testid="catalog-section-header"]',
    'div[data-testid="catalog-section-title"]',
    '[data-testid="rich-text"]',
    'h1',
    'h2',
    'h4',
    '[data-testid*="category"]',
    '[data-testid*="tab"]',
    '.category-name',
    '.section-title',
    '.menu-category',
]

CATEGORY_CONTEXT_XPATH = (
    'xpath=ancestor::*[contains(text(), "Menu") or contains(text(), "Category") '
    'or contains(text(), "Section") or contains(text(), "Food") '
    'or contains(text(), "Dish") or contains(text(), "Item")]'
)

# Items, layout-agnostic alternatives in priority order
LAYOUT_AGNOSTIC_ITEM_SELECTORS = [
    'a[data-testid*="store-item"]',
    'a[href*="/store/"]',
    'a[href*="item"]',
    'a[href*="mod=quickView"]',
    '[data-testid*="item"]',
    '.menu-item a',
    '.item a',
    'a[role="button"]',
    'button[role="button"]',
    '[data-testid*="menu"]',
]

ITEM_CONTAINER_SELECTORS = [
    'div[data-ref="store-carousel"]',
    'div[data-testid="store-catalog-section-vertical-grid"]',
    'div[class*="de"][class*="oh"][class*="ag"]',
    'div[class*="i4"][class*="gn"][class*="kp"]',
    'div[class*="i6"][class*="kr"][class*="ks"]',
    'div',
]

# Bare "a" is left out so the brute-force href filter still has a job
UNION_ITEM_PATTERNS = [
    'a[data-testid^="store-item-"]',
    'a[data-testid*="store-item"]',
    'a[href*="/store/"]',
    'a[href*="/item"]',
    'a[data-testid*="item"]',
    'div[data-ref="store-carousel"] a',
    'div[data-testid="store-catalog-section-vertical-grid"] a',
    'div[class*="carousel"] a',
    'div[class*="grid"] a',
]

# Item card fields
ITEM_NAME_SELECTOR = 'span[data-testid="rich-text"]'
ITEM_PRICE_SELECTOR = 'span[data-testid="rich-text"]:has-text("$")'
ITEM_TEXT_COLUMN_SELECTOR = 'div:has(span[data-testid="rich-text"]):has(span:not([data-testid]))'
ITEM_PLAIN_SPAN_SELECTOR = 'span:not([data-testid])'

# Detail endpoint observed when an item modal opens
DETAIL_ENDPOINT = "/_p/api/getMenuItemV1"
