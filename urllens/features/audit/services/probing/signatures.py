"""
Bot-protection and JavaScript-dependency signature catalog.

The catalog is data, not code: it ships as a versioned JSON file and an
alternate file can be pointed to with AUDIT_SIGNATURES_PATH. Matching is
case-insensitive substring search over the body sample, cookie names and
response header names.
"""
import json
import logging
from functools import lru_cache
from importlib import resources
from typing import List, Mapping, Optional, Sequence

from bs4 import BeautifulSoup
from pydantic import BaseModel, Field, ValidationError

from urllens.features.audit.schemas.probe import BotSignal, BotVendor
from urllens.platform.config import settings
from urllens.platform.exceptions import SignatureCatalogError

logger = logging.getLogger(__name__)


class VendorSignature(BaseModel):
    vendor: BotVendor
    body_markers: List[str] = Field(default_factory=list)
    cookie_markers: List[str] = Field(default_factory=list)
    header_markers: List[str] = Field(default_factory=list)


class SignatureCatalog(BaseModel):
    version: str
    min_body_chars: int = 100
    bot_vendors: List[VendorSignature]
    challenge_phrases: List[str] = Field(default_factory=list)
    js_markers: List[str] = Field(default_factory=list)

    def detect_bot_signals(
        self,
        body: str,
        headers: Optional[Mapping[str, str]] = None,
        cookie_names: Sequence[str] = (),
    ) -> List[BotSignal]:
        """
        One signal per vendor, first matching evidence wins. Body markers are
        checked before cookies, cookies before headers.
        """
        lower_body = body.lower()
        header_names = {name.lower() for name in (headers or {})}
        cookies = [name.lower() for name in cookie_names]

        signals: List[BotSignal] = []
        for signature in self.bot_vendors:
            evidence = _first_body_marker(lower_body, signature.body_markers)
            if evidence is None:
                evidence = _first_cookie_marker(cookies, signature.cookie_markers)
            if evidence is None:
                evidence = _first_header_marker(header_names, signature.header_markers)
            if evidence is not None:
                signals.append(BotSignal(vendor=signature.vendor, evidence=evidence))

        phrase = _first_body_marker(lower_body, self.challenge_phrases)
        if phrase is not None:
            signals.append(BotSignal(vendor=BotVendor.CHALLENGE_PAGE, evidence=phrase))

        return signals

    def detect_js_required(self, body: str) -> bool:
        if not body:
            return False

        lower_body = body.lower()
        for marker in self.js_markers:
            if marker.lower() in lower_body:
                return True

        content = _body_without_scripts(body)
        return content is not None and len(content) < self.min_body_chars


def _body_without_scripts(html: str) -> Optional[str]:
    """
    Markup left inside <body> once scripts are removed. Tolerates an omitted
    </body> and samples cut off mid-document.
    """
    soup = BeautifulSoup(html, "html.parser")
    if soup.body is None:
        return None
    for script in soup.body.find_all("script"):
        script.decompose()
    return soup.body.decode_contents().strip()


def _first_body_marker(lower_body: str, markers: Sequence[str]) -> Optional[str]:
    for marker in markers:
        if marker.lower() in lower_body:
            return f"body contains '{marker}'"
    return None


def _first_cookie_marker(cookies: Sequence[str], markers: Sequence[str]) -> Optional[str]:
    for marker in markers:
        needle = marker.lower()
        for cookie in cookies:
            if cookie.startswith(needle):
                return f"cookie '{cookie}'"
    return None


def _first_header_marker(header_names: set, markers: Sequence[str]) -> Optional[str]:
    for marker in markers:
        if marker.lower() in header_names:
            return f"header '{marker.lower()}'"
    return None


def parse_catalog(raw: str) -> SignatureCatalog:
    try:
        return SignatureCatalog.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        raise SignatureCatalogError(f"Invalid signature catalog: {e}") from e


@lru_cache(maxsize=8)
def load_signature_catalog(path: Optional[str] = None) -> SignatureCatalog:
    """Load (and cache) the catalog from `path`, AUDIT_SIGNATURES_PATH, or the bundled file."""
    path = path or settings.AUDIT_SIGNATURES_PATH
    if path:
        try:
            with open(path, encoding="utf-8") as fh:
                raw = fh.read()
        except OSError as e:
            raise SignatureCatalogError(f"Cannot read signature catalog {path}: {e}") from e
    else:
        raw = resources.files("urllens.features.audit.data").joinpath("signatures.json").read_text(encoding="utf-8")

    catalog = parse_catalog(raw)
    logger.info(f"Loaded signature catalog v{catalog.version} ({len(catalog.bot_vendors)} vendors)")
    return catalog


def cookie_names_from_headers(set_cookie_values: Sequence[str]) -> List[str]:
    names = []
    for value in set_cookie_values:
        name = value.split("=", 1)[0].strip()
        if name:
            names.append(name)
    return names


