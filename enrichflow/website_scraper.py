"""Website scraper provider: company details from the entity's own site."""

from __future__ import annotations

import json
import logging
import re
import time
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from . import config
from .enrichment_provider import (
    EnrichmentProvider,
    FieldValue,
    ProviderTier,
    best_candidates,
    best_values,
)
from .errors import ProviderAttemptFailed
from .models import EntityContext
from .rate_limiter import RateLimiter

log = logging.getLogger(__name__)

_USER_AGENT = "enrichflow/0.1 (enrichment bot; +https://example.com/bot)"
_MAX_REQUEST_TIMEOUT = 10
_MAX_CONTENT_BYTES = 2 * 1024 * 1024  # 2 MB

_ABOUT_PATHS = ["/about", "/about-us", "/about_us"]
_CONTACT_PATHS = ["/contact", "/contact-us", "/contact_us"]

# Fields only the about/contact pages tend to carry
_ABOUT_FIELDS = {"description", "founded_year", "employee_count", "linkedin_url", "company"}
_CONTACT_FIELDS = {"phone", "email", "linkedin_url"}

_LINKEDIN_RE = re.compile(r"https?://(?:www\.)?linkedin\.com/company/[\w\-]+", re.I)

# Phone number regex (US-centric but reasonable)
_PHONE_RE = re.compile(
    r"(?:\+1[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}"
)

_EMAIL_RE = re.compile(
    r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}"
)

# Tracking / placeholder domains never taken as a contact address
_SKIP_EMAIL_DOMAINS = {
    "example.com", "sentry.io", "wixpress.com", "googleapis.com",
}

_ORG_TYPES = ("Organization", "LocalBusiness", "Corporation")


def _normalize_url(domain: str) -> str:
    """Ensure domain becomes a full URL."""
    if not domain:
        return ""
    domain = domain.strip()
    if not domain.startswith(("http://", "https://")):
        return f"https://{domain}"
    return domain


class _Deadline:
    """Remaining time for one provider call."""

    def __init__(self, seconds: float) -> None:
        self.expires = time.monotonic() + seconds

    def remaining(self) -> float:
        left = self.expires - time.monotonic()
        if left <= 0:
            raise ProviderAttemptFailed("website_scraper", "timed out")
        return min(left, _MAX_REQUEST_TIMEOUT)


def _fetch_robots_txt(session: requests.Session, base_url: str, deadline: _Deadline) -> str | None:
    """Fetch robots.txt for a site. Returns content or None."""
    try:
        resp = session.get(urljoin(base_url, "/robots.txt"), timeout=deadline.remaining())
    except requests.RequestException as exc:
        log.debug("No robots.txt for %s: %s", base_url, exc)
        return None
    return resp.text if resp.status_code == 200 else None


def _is_allowed_by_robots(robots_txt: str | None, path: str) -> bool:
    """Basic robots.txt check: any Disallow prefix of *path* blocks it."""
    if not robots_txt:
        return True
    for line in robots_txt.splitlines():
        line = line.strip()
        if line.lower().startswith("disallow:"):
            disallowed = line.split(":", 1)[1].strip()
            if disallowed and path.startswith(disallowed):
                return False
    return True


def _fetch_page(session: requests.Session, url: str, deadline: _Deadline) -> BeautifulSoup | None:
    """Fetch and parse *url*. None for non-200 or oversized pages.

    Network errors propagate as requests.RequestException.
    """
    resp = session.get(
        url, timeout=deadline.remaining(),
        headers={"Accept": "text/html"},
        stream=True,
    )
    if resp.status_code != 200:
        return None
    content_length = resp.headers.get("Content-Length")
    if content_length and int(content_length) > _MAX_CONTENT_BYTES:
        return None
    return BeautifulSoup(resp.content[:_MAX_CONTENT_BYTES], "lxml")


def _extract_meta(soup: BeautifulSoup) -> list[FieldValue]:
    """Meta description (og:description as fallback) and og:site_name."""
    results = []
    meta_desc = soup.find("meta", attrs={"name": "description"})
    og_desc = soup.find("meta", attrs={"property": "og:description"})
    if meta_desc and meta_desc.get("content"):
        results.append(FieldValue("description", meta_desc["content"].strip(), 0.7))
    elif og_desc and og_desc.get("content"):
        results.append(FieldValue("description", og_desc["content"].strip(), 0.6))

    site_name = soup.find("meta", attrs={"property": "og:site_name"})
    if site_name and site_name.get("content"):
        results.append(FieldValue("company", site_name["content"].strip(), 0.75))
    return results


def _json_ld_items(soup: BeautifulSoup):
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except (json.JSONDecodeError, TypeError):
            continue
        if isinstance(data, list):
            yield from data
        elif isinstance(data, dict):
            yield from data.get("@graph", [data])


def _extract_json_ld(soup: BeautifulSoup) -> list[FieldValue]:
    """Fields from schema.org Organization-like JSON-LD blocks."""
    results = []
    for item in _json_ld_items(soup):
        if not isinstance(item, dict):
            continue
        item_type = item.get("@type", "")
        if isinstance(item_type, list):
            item_type = item_type[0] if item_type else ""
        if item_type not in _ORG_TYPES:
            continue

        if item.get("name"):
            results.append(FieldValue("company", str(item["name"]).strip(), 0.85))
        if item.get("description"):
            results.append(FieldValue("description", str(item["description"]).strip(), 0.8))
        if item.get("foundingDate"):
            year = str(item["foundingDate"])[:4]
            if year.isdigit():
                results.append(FieldValue("founded_year", year, 0.9))
        emp = item.get("numberOfEmployees")
        if emp:
            val = emp.get("value", "") if isinstance(emp, dict) else emp
            if val:
                results.append(FieldValue("employee_count", str(val), 0.8))
        if item.get("telephone"):
            results.append(FieldValue("phone", str(item["telephone"]).strip(), 0.85))
        if item.get("email"):
            results.append(FieldValue("email", str(item["email"]).strip().lower(), 0.85))

        same_as = item.get("sameAs", [])
        if isinstance(same_as, str):
            same_as = [same_as]
        for url in same_as:
            if isinstance(url, str) and _LINKEDIN_RE.match(url):
                results.append(FieldValue("linkedin_url", url, 0.9))
    return results


def _extract_linkedin(soup: BeautifulSoup) -> list[FieldValue]:
    """LinkedIn company page from <a> tags."""
    for a_tag in soup.find_all("a", href=True):
        match = _LINKEDIN_RE.match(a_tag["href"])
        if match:
            return [FieldValue("linkedin_url", match.group(0), 0.8)]
    return []


def _extract_contact_info(soup: BeautifulSoup) -> list[FieldValue]:
    """Phone numbers and email addresses from page text and mailto: links."""
    results = []
    text = soup.get_text(" ", strip=True)

    for match in _PHONE_RE.finditer(text):
        phone = match.group(0).strip()
        if len(re.sub(r"[^\d]", "", phone)) >= 10:
            results.append(FieldValue("phone", phone, 0.7))

    # mailto: links are more deliberate than addresses in body text
    for a_tag in soup.find_all("a", href=True):
        href = a_tag["href"]
        if href.startswith("mailto:"):
            email = href[7:].split("?")[0].lower()
            domain = email.split("@", 1)[1] if "@" in email else ""
            if domain and domain not in _SKIP_EMAIL_DOMAINS:
                results.append(FieldValue("email", email, 0.8))

    for match in _EMAIL_RE.finditer(text):
        email = match.group(0).lower()
        if email.split("@", 1)[1] not in _SKIP_EMAIL_DOMAINS:
            results.append(FieldValue("email", email, 0.7))

    return results


def _resolve_page_url(
    session: requests.Session,
    base_url: str,
    paths: list[str],
    robots_txt: str | None,
    deadline: _Deadline,
) -> str | None:
    """Try multiple path variants, return the first that exists."""
    for path in paths:
        if not _is_allowed_by_robots(robots_txt, path):
            continue
        url = urljoin(base_url, path)
        try:
            resp = session.head(url, timeout=deadline.remaining(), allow_redirects=True)
        except requests.RequestException:
            continue
        if resp.status_code == 200:
            return url
    return None

def _from_page(url: str, soup: BeautifulSoup, extractors) -> list[FieldValue]:
    """Run *extractors* over one page, tagging results with the page URL."""
    found = []
    for extract in extractors:
        for fv in extract(soup):
            fv.source_url = fv.source_url or url
            found.append(fv)
    return found


class WebsiteScraperProvider(EnrichmentProvider):
    """Scrape a company's website for basic info. Free; rate limited."""

    FIELDS = frozenset({
        "company", "website", "domain", "description", "phone", "email",
        "founded_year", "employee_count", "linkedin_url",
    })

    def __init__(self, rate_limit: float | None = None) -> None:
        rate = rate_limit or config.SCRAPER_RATE_LIMIT
        self._rate_limiter = RateLimiter(rate=rate, burst=max(1, int(rate)))

    @property
    def name(self) -> str:
        return "website_scraper"

    @property
    def tier(self) -> ProviderTier:
        return ProviderTier.FREE

    @property
    def capable_fields(self) -> frozenset[str]:
        return self.FIELDS

    @property
    def entity_types(self) -> tuple[str, ...]:
        return ("company",)

    def _get(self, session, url, deadline) -> BeautifulSoup | None:
        if not self._rate_limiter.acquire(timeout=deadline.remaining()):
            raise ProviderAttemptFailed(self.name, "timed out waiting for rate limiter")
        return _fetch_page(session, url, deadline)

    def attempt(self, context: EntityContext, requested_fields: list[str]) -> dict:
        """Scrape up to three pages of the entity's site.

        No website or domain known means nothing to look up (empty
        result).  An unreachable homepage is a failure.
        """
        target = context.get("website") or context.domain
        if not target:
            return {}

        wanted = set(requested_fields)
        deadline = _Deadline(context.timeout)
        base_url = _normalize_url(str(target))
        parsed = urlparse(base_url)

        found: list[FieldValue] = []

        def missing():
            return wanted - set(best_values(found))

        with requests.Session() as session:
            session.headers["User-Agent"] = _USER_AGENT
            robots_txt = _fetch_robots_txt(session, base_url, deadline)

            if _is_allowed_by_robots(robots_txt, "/"):
                try:
                    soup = self._get(session, base_url, deadline)
                except requests.RequestException as exc:
                    raise ProviderAttemptFailed(self.name, f"{base_url}: {exc}") from exc
                if soup is None:
                    raise ProviderAttemptFailed(self.name, f"{base_url}: homepage unavailable")
                found.extend(_from_page(
                    base_url, soup,
                    (_extract_meta, _extract_json_ld, _extract_linkedin, _extract_contact_info),
                ))
                host = (parsed.hostname or "").lower()
                found.append(FieldValue("website", base_url, 0.9, base_url))
                if host:
                    domain = host[4:] if host.startswith("www.") else host
                    found.append(FieldValue("domain", domain, 0.9, base_url))

            for paths, fields, extractors in (
                (_ABOUT_PATHS, _ABOUT_FIELDS, (_extract_meta, _extract_json_ld, _extract_linkedin)),
                (_CONTACT_PATHS, _CONTACT_FIELDS, (_extract_contact_info, _extract_linkedin)),
            ):
                if not missing() & fields:
                    continue
                url = _resolve_page_url(session, base_url, paths, robots_txt, deadline)
                if not url:
                    continue
                try:
                    soup = self._get(session, url, deadline)
                except requests.RequestException as exc:
                    log.debug("Failed to fetch %s: %s", url, exc)
                    continue
                if soup is not None:
                    found.extend(_from_page(url, soup, extractors))

        candidates = best_candidates(found)
        return {k: fv for k, fv in candidates.items() if k in wanted}
