"""Domain helpers: derive a company domain from a URL or email address."""

from __future__ import annotations

from urllib.parse import urlparse

# Common public email providers; their domains never identify a company.
PUBLIC_DOMAINS: frozenset[str] = frozenset({
    "gmail.com", "googlemail.com", "yahoo.com", "yahoo.co.uk",
    "hotmail.com", "outlook.com", "live.com", "msn.com", "aol.com",
    "icloud.com", "me.com", "mac.com", "mail.com",
    "protonmail.com", "pm.me", "zoho.com", "yandex.com",
    "gmx.com", "fastmail.com", "tutanota.com", "hey.com",
    "comcast.net", "att.net", "verizon.net", "sbcglobal.net",
    "cox.net", "charter.net", "earthlink.net",
})


def extract_domain(email: str) -> str | None:
    """Extract the domain from an email address, lowercased.

    Returns None if the address has no '@' sign.
    """
    if not email or "@" not in email:
        return None
    domain = email.rsplit("@", 1)[1].strip().lower()
    return domain or None


def is_public_domain(domain: str) -> bool:
    """Return True if *domain* is a known public email provider."""
    return domain.lower() in PUBLIC_DOMAINS


def domain_from_url(url: str) -> str | None:
    """Hostname of *url* without a leading ``www.``.

    Bare hosts (``acme.com/about``) are accepted.
    """
    if not url or not url.strip():
        return None
    url = url.strip()
    if "://" not in url:
        url = "https://" + url
    host = (urlparse(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None


def company_domain(*, website: str = "", email: str = "") -> str | None:
    """Best company domain from a website, else from a non-public email."""
    domain = domain_from_url(website) if website else None
    if domain:
        return domain
    domain = extract_domain(email) if email else None
    if domain and not is_public_domain(domain):
        return domain
    return None
