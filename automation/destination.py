"""Store URL validation. Runs before any browser session is opened."""

from urllib.parse import urlparse

from core.errors import ValidationError

SITE_DOMAIN = "doordash.com"
ALLOWED_HOSTS = frozenset({"doordash.com", "www.doordash.com"})
STORE_PATH_MARKER = "/store/"


def validate_destination(url: str | None) -> str:
    """Return *url* stripped, or raise ValidationError explaining what is wrong."""
    if not url or not url.strip():
        raise ValidationError("Store URL is required")
    url = url.strip()
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise ValidationError("Invalid URL format") from e
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValidationError("Invalid URL format")
    if parsed.hostname.lower() not in ALLOWED_HOSTS:
        raise ValidationError(f"URL must be from {SITE_DOMAIN}")
    if STORE_PATH_MARKER not in parsed.path:
        raise ValidationError("URL must be a store page")
    return url


def is_on_site(url: str | None, domain: str = SITE_DOMAIN) -> bool:
    """Whether a post-navigation location is still within the expected site."""
    if not url:
        return False
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return False
    return host == domain or host.endswith("." + domain)
