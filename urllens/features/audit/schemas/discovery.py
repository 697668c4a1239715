"""
Discovery Schemas
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class DiscoverySourceType(str, Enum):
    SITEMAP = "sitemap"
    SITEMAP_INDEX = "sitemap_index"
    ROBOTS_TXT = "robots_txt"
    COMMON_PATH = "common_path"


class DiscoveredURL(BaseModel):
    url: str
    source: DiscoverySourceType
    allowed_by_robots: bool = True


class DiscoverySource(BaseModel):
    """How much one source (robots.txt, a sitemap, the path catalog) contributed."""

    type: DiscoverySourceType
    url: str
    urls_found: int = 0
    error: Optional[str] = None


class DiscoveryResult(BaseModel):
    domain: str
    root_accessible: bool = False
    root_status: int = 0
    root_blocked_reason: Optional[str] = None
    crawl_delay: Optional[float] = None
    discovered_urls: List[DiscoveredURL] = Field(default_factory=list)
    sources: List[DiscoverySource] = Field(default_factory=list)

    @property
    def urls(self) -> List[str]:
        return [item.url for item in self.discovered_urls]
