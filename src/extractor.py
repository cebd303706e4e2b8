"""In-page data extraction.

PageDataExtractor runs small scripts inside a loaded tab and validates what
they return into pydantic models. It holds no state and never touches
session state, so the same instance is shared by every session.

Extraction rules:
    - heading: text of the first ``h1``, empty if there is none
    - sections: text of every ``h2``/``h3`` in document order
    - links: anchors whose raw ``href`` is non-empty and not fragment-only
    - images: every ``img`` source and alt text
    - ad markers: iframes whose id names a known ad network, plus ad slots
    - contact link: first anchor resolving to an http(s) URL whose text or
      target mentions contact/about
"""

from playwright.async_api import Page
from pydantic import ValidationError

from src.exceptions import ExtractionError
from src.logger import get_logger
from src.models import ClickableImage, PageSnapshot

log = get_logger(__name__)

AD_IFRAME_ID_MARKERS = ["google_ads", "aswift"]
AD_SLOT_SELECTOR = "ins.adsbygoogle"
CONTACT_KEYWORDS = ["contact", "about"]
NO_TEXT_PLACEHOLDER = "(no text)"
NO_ALT_PLACEHOLDER = "no-alt"

EXTRACT_PAGE_DATA_JS = """
({ adIframeMarkers, adSlotSelector, noTextPlaceholder }) => {
    const text = (el) => (el.innerText || el.textContent || '').trim();
    const data = {
        title: document.title || '',
        url: window.location.href,
        heading: '',
        sections: [],
        links: [],
        images: [],
        adMarkers: { iframeCount: 0, adSlotCount: 0 },
    };

    const h1 = document.querySelector('h1');
    if (h1) data.heading = text(h1);

    document.querySelectorAll('h2, h3').forEach((h) => data.sections.push(text(h)));

    document.querySelectorAll('a[href]').forEach((a) => {
        const raw = (a.getAttribute('href') || '').trim();
        if (!raw || raw.startsWith('#')) return;
        data.links.push({ text: text(a) || noTextPlaceholder, url: a.href });
    });

    document.querySelectorAll('img').forEach((img) => {
        data.images.push({ src: img.src || '', alt: img.alt || '' });
    });

    data.adMarkers.iframeCount = Array.from(document.querySelectorAll('iframe'))
        .filter((f) => adIframeMarkers.some((m) => (f.id || '').includes(m)))
        .length;
    data.adMarkers.adSlotCount = document.querySelectorAll(adSlotSelector).length;

    return data;
}
"""

FIND_CLICKABLE_IMAGES_JS = """
({ maxImages, noAltPlaceholder }) => {
    const images = [];
    document.querySelectorAll('img').forEach((img, index) => {
        const link = img.closest('a');
        if (link && link.href && !link.href.includes('#')) {
            images.push({
                index: index,
                src: img.src || '',
                alt: img.alt || noAltPlaceholder,
                linkHref: link.href,
            });
        }
    });
    return images.slice(0, maxImages);
}
"""

FIND_CONTACT_LINK_JS = """
(keywords) => {
    const links = Array.from(document.querySelectorAll('a[href]'));
    const match = links.find((link) => {
        const raw = (link.getAttribute('href') || '').trim();
        if (!raw || raw.startsWith('#')) return false;
        if (!/^https?:/i.test(link.href || '')) return false;
        const text = (link.innerText || link.textContent || '').toLowerCase();
        const href = link.href.toLowerCase();
        return keywords.some((k) => text.includes(k) || href.includes(k));
    });
    return match ? match.href : null;
}
"""


class PageDataExtractor:
    """Stateless extractor for snapshots and link discovery.

    Example:
        extractor = PageDataExtractor()
        snapshot = await extractor.extract(page)
        images = await extractor.find_clickable_images(page, limit=5)
    """

    async def extract(self, page: Page) -> PageSnapshot:
        """Extract a PageSnapshot from a loaded tab.

        Raises:
            ExtractionError: If the script result does not fit the schema.
        """
        raw = await page.evaluate(
            EXTRACT_PAGE_DATA_JS,
            {
                "adIframeMarkers": AD_IFRAME_ID_MARKERS,
                "adSlotSelector": AD_SLOT_SELECTOR,
                "noTextPlaceholder": NO_TEXT_PLACEHOLDER,
            },
        )
        try:
            snapshot = PageSnapshot.model_validate(raw)
        except ValidationError as exc:
            raise ExtractionError(url=page.url, reason=str(exc)) from exc

        log.debug(
            "Page data extracted",
            url=snapshot.url,
            sections=len(snapshot.sections),
            links=len(snapshot.links),
            images=len(snapshot.images),
        )
        return snapshot

    async def find_clickable_images(self, page: Page, limit: int) -> list[ClickableImage]:
        """Return up to ``limit`` anchor-wrapped images in document order.

        An image qualifies when its nearest enclosing anchor has an href
        without a ``#`` fragment.
        """
        raw = await page.evaluate(
            FIND_CLICKABLE_IMAGES_JS,
            {"maxImages": limit, "noAltPlaceholder": NO_ALT_PLACEHOLDER},
        )
        try:
            images = [ClickableImage.model_validate(item) for item in raw or []]
        except ValidationError as exc:
            raise ExtractionError(url=page.url, reason=str(exc)) from exc
        return images[:limit]

    async def find_contact_link(self, page: Page) -> str | None:
        """Return the first openable contact/about link, or None.

        Only anchors resolving to an http(s) URL are candidates, so a
        ``mailto:`` address or an empty href never shadows a later page link.
        """
        href = await page.evaluate(FIND_CONTACT_LINK_JS, CONTACT_KEYWORDS)
        return href or None
