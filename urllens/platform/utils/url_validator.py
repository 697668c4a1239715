import re
from typing import List, Tuple
from urllib.parse import urlparse

DOMAIN_PATTERN = re.compile(r"^[a-z0-9][-a-z0-9]*(\.[a-z0-9][-a-z0-9]*)+$")


def normalize_url(url: str) -> Tuple[str, bool]:

    url = url.strip()

    if not re.match(r"^https?://", url, re.IGNORECASE):
        normalized = f"https://{url}"
        return normalized, True

    return url, False


def validate_url(url: str) -> Tuple[bool, str, str]:
    if not url or not url.strip():
        return False, "", "URL cannot be empty"

    normalized_url, was_modified = normalize_url(url)

    try:
        parsed = urlparse(normalized_url)

        if not parsed.netloc or not parsed.hostname:
            return False, normalized_url, "Invalid URL format: missing domain"

        if parsed.scheme.lower() not in ["http", "https"]:
            return False, normalized_url, f"Invalid URL scheme: {parsed.scheme} (must be http or https)"

        if " " in parsed.netloc:
            return False, normalized_url, "Invalid URL format: whitespace in domain"

        return True, normalized_url, ""

    except ValueError as e:
        return False, normalized_url, f"URL parsing error: {str(e)}"


def validate_urls(urls: List[str]) -> Tuple[List[str], List[str]]:
    """Split raw input into normalized valid URLs and the rejected originals."""
    valid: List[str] = []
    invalid: List[str] = []
    for url in urls:
        is_valid, normalized_url, _ = validate_url(url) if isinstance(url, str) else (False, "", "")
        if is_valid:
            valid.append(normalized_url)
        else:
            invalid.append(url)
    return valid, invalid


def normalize_domain(domain: str) -> str:
    normalized = domain.strip().lower()
    normalized = re.sub(r"^https?://", "", normalized)
    normalized = normalized.rstrip("/")
    return normalized.split("/")[0]


def is_valid_domain(domain: str) -> bool:
    if not domain:
        return False
    return bool(DOMAIN_PATTERN.match(normalize_domain(domain)))


def filter_urls_by_domain(urls: List[str], target_domain: str) -> List[str]:
    """Keep URLs whose host is the target domain or one of its subdomains."""
    target = normalize_domain(target_domain)
    kept = []
    for url in urls:
        try:
            host = (urlparse(url).hostname or "").lower()
        except ValueError:
            continue
        if host and (host == target or host.endswith(f".{target}")):
            kept.append(url)
    return kept


def normalize_for_dedup(url: str) -> str:
    """
    Comparison key for discovered URLs: scheme + lowercase host + path,
    trailing-slash insensitive. Query strings and fragments are ignored.
    """
    parsed = urlparse(url.strip())
    host = (parsed.netloc or "").lower()
    path = parsed.path.rstrip("/")
    return f"{parsed.scheme.lower()}://{host}{path}"
