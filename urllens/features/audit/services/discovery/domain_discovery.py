"""
Domain Discovery

Enumerates candidate URLs for a root domain from robots.txt, sitemaps
(one level of sitemap-index indirection) and a catalog of conventional
page paths. A single unreachable source never fails the discovery.
"""
import logging
import zlib
from typing import Iterable, List, Optional, Set
from urllib.parse import urljoin, urlparse

import httpx

from urllens.features.audit.schemas.discovery import (
    DiscoveredURL,
    DiscoveryResult,
    DiscoverySource,
    DiscoverySourceType,
)
from urllens.features.audit.services.discovery.robots_parser import RobotsTxt, parse_robots_content
from urllens.features.audit.services.discovery.sitemap_parser import decode_sitemap_body, parse_sitemap
from urllens.features.audit.services.probing.url_prober import UrlProber
from urllens.platform.config import settings
from urllens.platform.utils.url_validator import (
    filter_urls_by_domain,
    normalize_domain,
    normalize_for_dedup,
)

logger = logging.getLogger(__name__)

SITEMAP_PATHS = [
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/sitemap-index.xml",
    "/sitemaps.xml",
]

COMMON_PATHS = [
    "/about",
    "/about-us",
    "/contact",
    "/contact-us",
    "/blog",
    "/news",
    "/products",
    "/services",
    "/pricing",
    "/faq",
    "/help",
    "/support",
    "/terms",
    "/privacy",
    "/careers",
    "/team",
]


class SitemapUnavailable(Exception):
    """A sitemap or robots.txt could not be fetched or is not usable."""


def dedupe_discovered(candidates: Iterable[DiscoveredURL]) -> List[DiscoveredURL]:
    """First occurrence wins, compared on the normalized URL."""
    seen: Set[str] = set()
    unique = []
    for candidate in candidates:
        key = normalize_for_dedup(candidate.url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


class DomainDiscoveryService:

    def __init__(
        self,
        prober: Optional[UrlProber] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        user_agent: Optional[str] = None,
    ):
        self.transport = transport
        self.prober = prober or UrlProber(transport=transport)
        self.user_agent = user_agent or settings.AUDIT_USER_AGENT

    async def discover(
        self,
        domain: str,
        max_urls: Optional[int] = None,
        timeout: Optional[float] = None,
        include_common_paths: bool = True,
    ) -> DiscoveryResult:
        """
        Discover candidate URLs for a domain.

        Args:
            domain: Bare domain or URL; scheme, path and trailing slash are stripped
            max_urls: Cap on returned URLs (defaults to AUDIT_MAX_URLS_PER_DOMAIN)
            timeout: Per-request timeout in seconds
            include_common_paths: Append the conventional page catalog

        Returns:
            DiscoveryResult with the root URL first and at most max_urls entries
        """
        domain = normalize_domain(domain)
        max_urls = max_urls or settings.AUDIT_MAX_URLS_PER_DOMAIN
        timeout = timeout or settings.AUDIT_TIMEOUT_SECONDS
        base_url = f"https://{domain}"

        result = DiscoveryResult(domain=domain)

        root = await self.prober.probe(base_url, timeout=timeout)
        result.root_accessible = root.accessible
        result.root_status = root.http_status
        result.root_blocked_reason = root.blocked_reason

        candidates: List[DiscoveredURL] = [
            DiscoveredURL(url=base_url, source=DiscoverySourceType.COMMON_PATH)
        ]

        async with self._client(timeout) as client:
            robots = await self._read_robots(client, base_url, result)
            robots_sitemaps = []
            if robots is not None:
                robots_sitemaps = [urljoin(f"{base_url}/robots.txt", sitemap) for sitemap in robots.sitemaps]

            fetched: Set[str] = set()
            worklist = [(url, True) for url in robots_sitemaps]
            worklist += [(f"{base_url}{path}", False) for path in SITEMAP_PATHS]

            for sitemap_url, from_robots in worklist:
                key = normalize_for_dedup(sitemap_url)
                if key in fetched:
                    continue
                fetched.add(key)
                candidates.extend(
                    await self._collect_sitemap(client, domain, sitemap_url, from_robots, result, fetched)
                )

        if include_common_paths:
            common = [
                DiscoveredURL(url=f"{base_url}{path}", source=DiscoverySourceType.COMMON_PATH)
                for path in COMMON_PATHS
            ]
            candidates.extend(common)
            result.sources.append(
                DiscoverySource(type=DiscoverySourceType.COMMON_PATH, url=base_url, urls_found=len(common))
            )

        discovered = dedupe_discovered(candidates)[:max_urls]
        if robots is not None:
            discovered = [self._mark_robots_access(item, robots) for item in discovered]
        result.discovered_urls = discovered

        logger.info(
            f"Discovered {len(result.discovered_urls)} URLs for {domain} "
            f"from {len(result.sources)} sources (root status {result.root_status})"
        )
        return result

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            transport=self.transport,
            headers={
                "User-Agent": self.user_agent,
                "Accept": "application/xml, text/xml, text/plain, */*",
            },
        )

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        try:
            response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise SitemapUnavailable(str(e) or type(e).__name__) from e
        if response.status_code != 200:
            raise SitemapUnavailable(f"HTTP {response.status_code}")
        return response

    async def _fetch_sitemap(self, client: httpx.AsyncClient, url: str) -> str:
        response = await self._fetch(client, url)
        if "html" in response.headers.get("content-type", "").lower():
            raise SitemapUnavailable("Not a sitemap: HTML response")
        try:
            return decode_sitemap_body(response.content)
        except (OSError, EOFError, zlib.error) as e:
            raise SitemapUnavailable(f"Corrupt gzip payload: {e}") from e

    async def _read_robots(
        self, client: httpx.AsyncClient, base_url: str, result: DiscoveryResult
    ) -> Optional[RobotsTxt]:
        robots_url = f"{base_url}/robots.txt"
        try:
            response = await self._fetch(client, robots_url)
        except SitemapUnavailable as e:
            logger.warning(f"robots.txt unavailable for {base_url}: {e}")
            return None

        robots = parse_robots_content(response.text)
        result.crawl_delay = robots.crawl_delay
        result.sources.append(
            DiscoverySource(
                type=DiscoverySourceType.ROBOTS_TXT,
                url=robots_url,
                urls_found=len(robots.sitemaps),
            )
        )
        return robots

    def _mark_robots_access(self, item: DiscoveredURL, robots: RobotsTxt) -> DiscoveredURL:
        parsed = urlparse(item.url)
        path = parsed.path or "/"
        if parsed.query:
            path = f"{path}?{parsed.query}"
        return item.model_copy(update={"allowed_by_robots": robots.is_allowed(path, self.user_agent)})

    async def _collect_sitemap(
        self,
        client: httpx.AsyncClient,
        domain: str,
        sitemap_url: str,
        from_robots: bool,
        result: DiscoveryResult,
        fetched: Set[str],
    ) -> List[DiscoveredURL]:
        try:
            xml = await self._fetch_sitemap(client, sitemap_url)
        except SitemapUnavailable as e:
            if from_robots:
                logger.warning(f"Sitemap {sitemap_url} listed in robots.txt is unavailable: {e}")
                result.sources.append(
                    DiscoverySource(
                        type=DiscoverySourceType.SITEMAP, url=sitemap_url, urls_found=0, error=str(e)
                    )
                )
            else:
                logger.debug(f"No sitemap at {sitemap_url}: {e}")
            return []

        parsed = parse_sitemap(xml)
        if not parsed.is_index:
            locs = self._on_domain(parsed.locs, domain, sitemap_url)
            result.sources.append(
                DiscoverySource(type=DiscoverySourceType.SITEMAP, url=sitemap_url, urls_found=len(locs))
            )
            return [DiscoveredURL(url=loc, source=DiscoverySourceType.SITEMAP) for loc in locs]

        found: List[DiscoveredURL] = []
        for child_url in parsed.locs:
            key = normalize_for_dedup(child_url)
            if key in fetched:
                continue
            fetched.add(key)

            try:
                child_xml = await self._fetch_sitemap(client, child_url)
            except SitemapUnavailable as e:
                logger.warning(f"Child sitemap {child_url} of {sitemap_url} is unavailable: {e}")
                continue

            child = parse_sitemap(child_xml)
            if child.is_index:
                logger.debug(f"Skipping nested sitemap index {child_url}")
                continue
            locs = self._on_domain(child.locs, domain, child_url)
            found.extend(DiscoveredURL(url=loc, source=DiscoverySourceType.SITEMAP_INDEX) for loc in locs)

        result.sources.append(
            DiscoverySource(type=DiscoverySourceType.SITEMAP_INDEX, url=sitemap_url, urls_found=len(found))
        )
        return found

    @staticmethod
    def _on_domain(locs: List[str], domain: str, sitemap_url: str) -> List[str]:
        """Sitemap entries on the audited site, its www host or its subdomains."""
        site = domain[4:] if domain.startswith("www.") else domain
        kept = filter_urls_by_domain(locs, site)
        if len(kept) < len(locs):
            logger.debug(f"Dropped {len(locs) - len(kept)} off-domain URLs from {sitemap_url}")
        return kept
