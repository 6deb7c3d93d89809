"""Shared fixtures: an in-memory stand-in for Playwright pages and locators.

Elements declare the selector strings they answer to; a locator query
returns every descendant that declares the selector (or, for a
comma-separated selector, any of its parts) in document order.
"""

import json
from typing import Any, Callable, Dict, Iterable, List, Optional

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from catalog_harvester.ingest.detail_pool import DetailResponse
from catalog_harvester.ingest.extraction import RawItem
from catalog_harvester.ingest.selectors import (
    FALLBACK_ITEM_SELECTOR,
    ITEM_NAME_SELECTOR,
    ITEM_PLAIN_SPAN_SELECTOR,
    ITEM_PRICE_SELECTOR,
    ITEM_TEXT_COLUMN_SELECTOR,
    PRIMARY_ITEM_SELECTOR,
)
from catalog_harvester.worker.job_store import InMemoryJobStore


def _selector_parts(selector: str) -> List[str]:
    if selector.startswith("xpath="):
        return [selector]
    return [part.strip() for part in selector.split(",") if part.strip()]


class FakeElement:
    def __init__(
        self,
        matches: Iterable[str] = (),
        attrs: Optional[Dict[str, str]] = None,
        text: str = "",
        children: Optional[List["FakeElement"]] = None,
        on_click: Optional[Callable[["FakeElement"], None]] = None,
    ):
        self.matches = set(matches)
        self.attrs = dict(attrs or {})
        self.text = text
        self.children: List[FakeElement] = []
        self.on_click = on_click
        self.clicks = 0
        for child in children or []:
            self.append(child)

    def append(self, child: "FakeElement") -> "FakeElement":
        self.children.append(child)
        return child

    def descendants(self) -> List["FakeElement"]:
        found = []
        for child in self.children:
            found.append(child)
            found.extend(child.descendants())
        return found

    def answers(self, selector: str) -> bool:
        if selector in self.matches:
            return True
        return any(part in self.matches for part in _selector_parts(selector))

    def query(self, selector: str) -> List["FakeElement"]:
        return [el for el in self.descendants() if el.answers(selector)]

    def inner_text(self) -> str:
        parts = [self.text] if self.text else []
        parts.extend(child.inner_text() for child in self.children)
        return "\n".join(p for p in parts if p)


class FakeLocator:
    def __init__(self, resolve: Callable[[], List[FakeElement]]):
        self._resolve = resolve

    def elements(self) -> List[FakeElement]:
        return self._resolve()

    async def count(self) -> int:
        return len(self._resolve())

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(lambda: self._resolve()[:1])

    def nth(self, index: int) -> "FakeLocator":
        return FakeLocator(lambda: self._resolve()[index:index + 1])

    def locator(self, selector: str) -> "FakeLocator":
        def resolve():
            seen, found = set(), []
            for el in self._resolve():
                for match in el.query(selector):
                    if id(match) not in seen:
                        seen.add(id(match))
                        found.append(match)
            return found
        return FakeLocator(resolve)

    def _one(self) -> Optional[FakeElement]:
        elements = self._resolve()
        return elements[0] if elements else None

    async def get_attribute(self, name: str) -> Optional[str]:
        el = self._one()
        return el.attrs.get(name) if el else None

    async def inner_text(self) -> str:
        el = self._one()
        return el.inner_text() if el else ""

    async def all_inner_texts(self) -> List[str]:
        return [el.inner_text() for el in self._resolve()]

    async def click(self, **kwargs) -> None:
        el = self._one()
        if el is not None:
            el.clicks += 1
            if el.on_click:
                el.on_click(el)

    async def scroll_into_view_if_needed(self) -> None:
        return None

    async def element_handle(self) -> Optional[FakeElement]:
        return self._one()

    async def wait_for(self, state: str = "visible", timeout: Optional[float] = None) -> None:
        return None


class FakeRequest:
    def __init__(self, url: str, body: Dict[str, Any], method: str = "POST"):
        self.url = url
        self.method = method
        self.post_data = json.dumps(body)

    @property
    def post_data_json(self) -> Any:
        return json.loads(self.post_data)


class FakeRequestWaiter:
    """Async context manager standing in for ``page.expect_request``."""

    def __init__(self, page: "FakePage", predicate: Callable[[FakeRequest], bool]):
        self._page = page
        self._predicate = predicate

    async def __aenter__(self) -> "FakeRequestWaiter":
        return self

    async def __aexit__(self, *exc_info) -> bool:
        return False

    @property
    def value(self):
        return self._match()

    async def _match(self) -> FakeRequest:
        for request in self._page.requests:
            if self._predicate(request):
                return request
        raise PlaywrightTimeoutError("Timeout waiting for request")


class FakePage:
    def __init__(
        self,
        body: Optional[FakeElement] = None,
        url: str = "https://shop.example.com/store/test-store/abc",
        title: str = "Test Store",
        html: str = "<html><body>menu</body></html>",
    ):
        self.body = body or FakeElement(matches={"body"})
        self.body.matches.add("body")
        self.document = FakeElement(children=[self.body])
        self.url = url
        self._title = title
        self.html = html
        self.evaluations: List[str] = []
        self.waits: List[float] = []
        self.gotos: List[str] = []
        self.routes: List[str] = []
        self.requests: List[FakeRequest] = []
        self.closed = False
        self.on_evaluate: Optional[Callable[[str], None]] = None

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(lambda: self.document.query(selector))

    async def title(self) -> str:
        return self._title

    async def content(self) -> str:
        return self.html

    async def goto(self, url: str, **kwargs) -> None:
        self.gotos.append(url)

    async def evaluate(self, script: str, arg=None):
        self.evaluations.append(script)
        if self.on_evaluate:
            self.on_evaluate(script)
        return None

    async def wait_for_timeout(self, ms: float) -> None:
        self.waits.append(ms)

    def expect_request(self, predicate, timeout: Optional[float] = None) -> FakeRequestWaiter:
        return FakeRequestWaiter(self, predicate)

    async def wait_for_load_state(self, state: str = "load", **kwargs) -> None:
        return None

    async def route(self, pattern: str, handler) -> None:
        self.routes.append(pattern)

    async def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self):
        self.pages: List[FakePage] = []

    async def new_page(self) -> FakePage:
        page = FakePage()
        self.pages.append(page)
        return page


class FakeBrowser:
    def __init__(self):
        self.contexts: List[FakeContext] = []
        self.closed = False

    async def new_context(self, **kwargs) -> FakeContext:
        context = FakeContext()
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True


def item_uuid(n: int) -> str:
    return f"00000000-0000-4000-8000-{n:012d}"


SECTION_UUID = "11111111-1111-4111-8111-111111111111"
SUBSECTION_UUID = "22222222-2222-4222-8222-222222222222"


def make_item(n: int, name: str, price: str = "$5.00", description: Optional[str] = None) -> FakeElement:
    """An item anchor whose href carries the full identifier triple."""
    uuid = item_uuid(n)
    text_children = [
        FakeElement(matches={ITEM_NAME_SELECTOR}, text=name),
        FakeElement(matches={ITEM_NAME_SELECTOR, ITEM_PRICE_SELECTOR}, text=price),
    ]
    if description:
        text_children.append(FakeElement(matches={ITEM_PLAIN_SPAN_SELECTOR}, text=description))

    return FakeElement(
        matches={"a", PRIMARY_ITEM_SELECTOR, *FALLBACK_ITEM_SELECTOR.split(", "), 'a[href*="item"]'},
        attrs={
            "href": f"/store/test-store/abc/{SECTION_UUID}/{SUBSECTION_UUID}/{uuid}",
            "data-testid": f"store-item-{uuid}",
        },
        children=[
            FakeElement(matches={"img"}, attrs={"src": f"https://img.example.com/{n}.jpg"}),
            FakeElement(matches={ITEM_TEXT_COLUMN_SELECTOR, "div"}, children=text_children),
        ],
    )


def make_section(title: str, items: List[FakeElement]) -> FakeElement:
    return FakeElement(
        matches={'li[data-testid="store-catalog-subsection-container"]', "li"},
        children=[FakeElement(matches={'h3[data-testid*="rich-text"]', "h3"}, text=title), *items],
    )


def make_menu_page(categories: Dict[str, List[str]]) -> FakePage:
    """A storefront page with one section per category."""
    body = FakeElement(matches={"body"})
    body.append(FakeElement(matches={"header h1", "h1"}, text="Test Diner"))
    n = 0
    for title, names in categories.items():
        items = []
        for name in names:
            n += 1
            items.append(make_item(n, name))
        body.append(make_section(title, items))
    return FakePage(body=body)


@pytest.fixture
def store():
    return InMemoryJobStore(ttl_seconds=3600)


@pytest.fixture
def fake_page():
    return FakePage()


class FakeController:
    """Stands in for PageSessionController; hands out a prepared page."""

    def __init__(self, page: FakePage, on_navigate: Optional[Callable[[], None]] = None):
        self.page = page
        self.browser = FakeBrowser()
        self.on_navigate = on_navigate
        self.geolocation = None
        self.closed = False

    async def launch(self) -> FakeBrowser:
        return self.browser

    async def new_session(self, browser, geolocation=None) -> FakeContext:
        self.geolocation = geolocation
        return await browser.new_context()

    async def new_page(self, context, min_delay_ms=None, jitter_ms=None) -> FakePage:
        return self.page

    async def navigate(self, page, url, timeout_ms=None) -> int:
        page.gotos.append(url)
        if self.on_navigate:
            self.on_navigate()
        return 0

    async def close(self, browser) -> None:
        self.closed = True


def detail_payload(uuid: str, groups: Optional[list] = None) -> dict:
    return {"data": {"menuItemUuid": uuid, "title": "x", "customizationsList": groups or []}}


async def matching_fetcher(page, item, base_url, timeout_ms):
    """Detail fetcher that always returns the item's own payload."""
    return DetailResponse(payload=detail_payload(item.item_uuid), request_uuids=[item.item_uuid])


def make_raw_items(count: int) -> List[RawItem]:
    """Resolvable items, as the catalog walk would hand them to the pool."""
    return [
        RawItem(
            name=f"Item {i}",
            item_uuid=item_uuid(i),
            section_uuid=SECTION_UUID,
            subsection_uuid=SUBSECTION_UUID,
            href=f"/store/x/{SECTION_UUID}/{SUBSECTION_UUID}/{item_uuid(i)}",
        )
        for i in range(count)
    ]
