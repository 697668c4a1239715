import gzip

from urllens.features.audit.services.discovery.sitemap_parser import (
    decode_sitemap_body,
    extract_locs,
    parse_sitemap,
)

URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://example.com/</loc></url>
  <url><loc> https://example.com/about </loc><lastmod>2026-01-01</lastmod></url>
  <url><loc>https://example.com/search?q=a&amp;page=2</loc></url>
  <url><loc>ftp://example.com/file</loc></url>
</urlset>"""

INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://example.com/sitemap-pages.xml</loc></sitemap>
  <sitemap><loc>https://example.com/sitemap-posts.xml</loc></sitemap>
</sitemapindex>"""


def test_urlset_locs_in_order():
    parsed = parse_sitemap(URLSET)

    assert parsed.is_index is False
    assert parsed.locs == [
        "https://example.com/",
        "https://example.com/about",
        "https://example.com/search?q=a&page=2",
    ]


def test_sitemap_index_detected():
    parsed = parse_sitemap(INDEX)

    assert parsed.is_index is True
    assert parsed.locs == [
        "https://example.com/sitemap-pages.xml",
        "https://example.com/sitemap-posts.xml",
    ]


def test_malformed_xml_falls_back_to_regex():
    broken = "<urlset><url><loc>https://example.com/a</loc></url><url><loc>https://example.com/b?x=1&amp;y=2</loc>"

    assert extract_locs(broken) == ["https://example.com/a", "https://example.com/b?x=1&y=2"]


def test_gzip_payload_is_decompressed():
    assert decode_sitemap_body(gzip.compress(URLSET.encode())) == URLSET


def test_plain_payload_is_decoded():
    assert decode_sitemap_body(INDEX.encode()) == INDEX


def test_entity_declarations_are_not_expanded():
    hostile = (
        '<?xml version="1.0"?>'
        '<!DOCTYPE urlset [<!ENTITY inj "https://attacker.example/phish">]>'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        "<url><loc>&inj;</loc></url>"
        "<url><loc>https://example.com/real</loc></url>"
        "</urlset>"
    )

    assert parse_sitemap(hostile).locs == []
