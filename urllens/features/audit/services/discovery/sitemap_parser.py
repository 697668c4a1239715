import gzip
import html
import logging
import re
from dataclasses import dataclass, field
from typing import List

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as ET

from urllens.platform.utils.url_validator import validate_url

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"

_LOC_RE = re.compile(r"<loc[^>]*>\s*([^<]+?)\s*</loc>", re.IGNORECASE)


@dataclass
class ParsedSitemap:
    is_index: bool = False
    locs: List[str] = field(default_factory=list)


def decode_sitemap_body(content: bytes) -> str:
    """Gunzip when the payload is gzip-compressed, then decode as UTF-8."""
    if content[:2] == GZIP_MAGIC:
        content = gzip.decompress(content)
    return content.decode("utf-8", errors="replace")


def is_sitemap_index(xml: str) -> bool:
    return "<sitemapindex" in xml.lower()


def extract_locs(xml: str) -> List[str]:
    """
    All <loc> values that are valid http(s) URLs, in document order.
    Documents ElementTree cannot parse are scanned with a regex instead;
    documents declaring entities or external references are skipped.
    """
    try:
        root = ET.fromstring(xml)
        raw = [el.text.strip() for el in root.iter() if _local_name(el.tag) == "loc" and el.text]
    except DefusedXmlException as e:
        logger.warning(f"Rejected sitemap with forbidden XML construct: {e}")
        return []
    except ET.ParseError as e:
        logger.debug(f"Sitemap XML did not parse ({e}), falling back to regex extraction")
        raw = [html.unescape(match) for match in _LOC_RE.findall(xml)]

    locs = []
    for value in raw:
        if not value.lower().startswith(("http://", "https://")):
            continue
        is_valid, _, _ = validate_url(value)
        if is_valid:
            locs.append(value)
    return locs


def parse_sitemap(xml: str) -> ParsedSitemap:
    return ParsedSitemap(is_index=is_sitemap_index(xml), locs=extract_locs(xml))


def _local_name(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].lower()
