"""
scorgs.clients.rsi — Roberts Space Industries page scraper
===========================================================

RSI has no public API for organizations or citizen profiles, so we fetch
the public HTML pages and pick out the handful of fields we care about.

Organization page (``/en/orgs/{SPECTRUM_ID}``):

* name — ``<title>`` is ``"Org Name [SID] - Organizations - ..."``;
  falls back to the first ``<h1>``
* headline — ``.headline``
* content sources — ``.body.markitup-text`` (main description), the
  ``.tags li`` list, and every ``.content-tab`` (history / manifesto /
  charter)
* icon — ``.logo img``, banner — ``.org-banner`` / ``.banner img``
* member count — ``.count`` text like ``"123 members"``

Citizen page (``/en/citizens/{handle}``): the ``.bio`` block.

Network failures and non-200 responses return ``None`` rather than raising;
callers decide whether a missing page is a user error or an outage.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from scorgs.services.verification import content_contains_code

logger = logging.getLogger(__name__)

USER_AGENT = "SC-Orgs/1.0 (Star Citizen Organization Platform)"
REQUEST_TIMEOUT_SECONDS = 10

_TITLE_NAME_RE = re.compile(r"^([^[]+?)\s*\[[^\]]+\]")
_H1_NAME_RE = re.compile(r"^([^/]+)\s*/\s*")
_MEMBER_COUNT_RE = re.compile(r"(\d+)\s*member", re.IGNORECASE)

# Content tabs folded into the description, in display order.
_DESCRIPTION_SOURCES = (
    "body-markitup",
    "content-tab-history",
    "content-tab-manifesto",
    "content-tab-charter",
)


@dataclass
class RSIOrganizationPage:
    """Fields scraped from a public RSI organization page."""
    spectrum_id: str
    name: str
    headline: str | None = None
    description: str | None = None
    content_sources: dict[str, str] = field(default_factory=dict)
    icon_url: str | None = None
    banner_url: str | None = None
    member_count: int | None = None
    languages: list[str] = field(default_factory=lambda: ["English"])

    def searchable_text(self) -> list[str]:
        """Every text block a sentinel could have been pasted into."""
        blocks = [self.headline or "", self.description or ""]
        blocks.extend(self.content_sources.values())
        return [b for b in blocks if b]

    def contains_code(self, code: str) -> bool:
        return any(content_contains_code(block, code) for block in self.searchable_text())

    def to_json(self) -> dict:
        return {
            "spectrum_id": self.spectrum_id,
            "name": self.name,
            "headline": self.headline,
            "description": self.description,
            "icon_url": self.icon_url,
            "banner_url": self.banner_url,
            "member_count": self.member_count,
            "languages": list(self.languages),
        }


# ---------------------------------------------------------------------------
# Parsing (pure, no network)
# ---------------------------------------------------------------------------
def _text(node) -> str:
    return node.get_text("\n", strip=True) if node is not None else ""


def parse_organization_page(
    html: str,
    spectrum_id: str,
    base_url: str = "https://robertsspaceindustries.com",
) -> RSIOrganizationPage:
    """Extract organization fields from the raw HTML of an RSI org page."""
    soup = BeautifulSoup(html, "html.parser")

    name = spectrum_id
    title = soup.title.get_text(strip=True) if soup.title else ""
    if title:
        match = _TITLE_NAME_RE.match(title)
        if match:
            name = match.group(1).strip()
        else:
            for suffix in (" - Organizations", " - Organization",
                           " - Roberts Space Industries", " - Star Citizen"):
                title = title.replace(suffix, "")
            name = title.strip() or spectrum_id

    if not name or name == spectrum_id:
        h1 = soup.find("h1")
        if h1 is not None:
            match = _H1_NAME_RE.match(h1.get_text(strip=True))
            if match:
                name = match.group(1).strip()

    headline = _text(soup.select_one(".headline")) or None

    sources: dict[str, str] = {}
    body = _text(soup.select_one(".body.markitup-text"))
    if body:
        sources["body-markitup"] = body

    tags = [li.get_text(strip=True) for li in soup.select(".tags li")]
    tags = [t for t in tags if t]
    if tags:
        sources["organization-tags"] = ", ".join(tags)

    for tab in soup.select(".content-tab"):
        tab_title = tab.select_one(".tab-title")
        tab_body = tab.select_one(".markitup-text")
        if tab_title is None or tab_body is None:
            continue
        content = _text(tab_body)
        if content:
            sources[f"content-tab-{tab_title.get_text(strip=True).lower()}"] = content

    parts = [headline] if headline else []
    parts.extend(sources[key] for key in _DESCRIPTION_SOURCES if sources.get(key))
    description = "\n\n".join(parts) or None

    icon_url = None
    logo = soup.select_one(".logo img")
    if logo is not None and logo.get("src") and not logo["src"].startswith("data:"):
        icon_url = urljoin(base_url, logo["src"])

    banner_url = None
    banner = soup.select_one(".org-banner") or soup.select_one(".banner img")
    if banner is not None and banner.get("src"):
        banner_url = urljoin(base_url, banner["src"])

    member_count = None
    count = soup.select_one(".count")
    if count is not None:
        match = _MEMBER_COUNT_RE.search(count.get_text(" ", strip=True))
        if match:
            member_count = int(match.group(1))

    return RSIOrganizationPage(
        spectrum_id=spectrum_id,
        name=name,
        headline=headline,
        description=description,
        content_sources=sources,
        icon_url=icon_url,
        banner_url=banner_url,
        member_count=member_count,
    )


def parse_citizen_bio(html: str) -> str | None:
    soup = BeautifulSoup(html, "html.parser")
    bio = soup.select_one(".bio .value") or soup.select_one(".bio")
    text = _text(bio)
    return text or None


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------
class RSIClient:
    """Async scraper for public RSI pages.

    Parameters
    ----------
    base_url:
        Site root, normally ``https://robertsspaceindustries.com``.
    client:
        Optional pre-built :class:`httpx.AsyncClient` (tests inject one with
        a ``MockTransport``).
    """

    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client

    async def _get(self, path: str) -> str | None:
        url = f"{self.base_url}{path}"
        headers = {
            "User-Agent": USER_AGENT,
            "Accept": "text/html,application/xhtml+xml",
            "Accept-Language": "en-US,en;q=0.5",
        }
        try:
            if self._client is not None:
                resp = await self._client.get(url, headers=headers)
            else:
                async with httpx.AsyncClient(
                    timeout=REQUEST_TIMEOUT_SECONDS, follow_redirects=True,
                ) as client:
                    resp = await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("RSI request failed for %s: %s", url, exc)
            return None

        if resp.status_code != 200:
            logger.warning("RSI returned %d for %s", resp.status_code, url)
            return None
        return resp.text

    async def fetch_organization(self, spectrum_id: str) -> RSIOrganizationPage | None:
        """Scrape ``/en/orgs/{spectrum_id}``; ``None`` if unavailable."""
        html = await self._get(f"/en/orgs/{spectrum_id}")
        if html is None:
            return None
        page = parse_organization_page(html, spectrum_id, self.base_url)
        logger.info(
            "Scraped RSI org %s: name=%r sources=%d members=%s",
            spectrum_id, page.name, len(page.content_sources), page.member_count,
        )
        return page

    async def verify_sentinel(self, spectrum_id: str, code: str) -> bool:
        """True when *code* appears anywhere on the organization page."""
        page = await self.fetch_organization(spectrum_id)
        if page is None:
            return False
        return page.contains_code(code)

    async def fetch_citizen_bio(self, handle: str) -> str | None:
        html = await self._get(f"/en/citizens/{handle}")
        if html is None:
            return None
        return parse_citizen_bio(html)
