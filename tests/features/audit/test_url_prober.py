import httpx
import pytest

from urllens.features.audit.schemas.probe import BotVendor
from urllens.features.audit.services.probing.url_prober import (
    UrlProber,
    classify_network_error,
    is_html_content_type,
)

HTML = "text/html; charset=utf-8"


@pytest.fixture
def prober(fake_site):
    return UrlProber(transport=fake_site.transport, default_timeout=2.0)


@pytest.mark.asyncio
async def test_accessible_html_page(fake_site, prober):
    fake_site.html("https://example.com/")

    outcome = await prober.probe("https://example.com/")

    assert outcome.accessible is True
    assert outcome.http_status == 200
    assert outcome.final_url == "https://example.com/"
    assert outcome.blocked_reason is None
    assert outcome.redirect_chain == ()
    assert outcome.js_required is False
    assert outcome.bot_signals == ()
    assert "hand-made furniture" in outcome.body_sample
    assert fake_site.calls() == ["https://example.com/"] * 2
    assert [method for method, _ in fake_site.requests] == ["HEAD", "GET"]


@pytest.mark.asyncio
async def test_body_sample_not_serialized(fake_site, prober):
    fake_site.html("https://example.com/")

    outcome = await prober.probe("https://example.com/")

    assert "body_sample" not in outcome.model_dump()


@pytest.mark.asyncio
async def test_follows_redirects_manually(fake_site, prober):
    fake_site.redirect("http://example.com/", "https://example.com/", status=301)
    fake_site.redirect("https://example.com/", "/home", status=302)
    fake_site.html("https://example.com/home")

    outcome = await prober.probe("http://example.com/")

    assert outcome.accessible is True
    assert outcome.final_url == "https://example.com/home"
    assert [(hop.from_url, hop.to_url, hop.status) for hop in outcome.redirect_chain] == [
        ("http://example.com/", "https://example.com/", 301),
        ("https://example.com/", "https://example.com/home", 302),
    ]


@pytest.mark.asyncio
async def test_redirect_loop_stops_at_ten_hops(fake_site, prober):
    fake_site.redirect("https://loop.example/a", "/b", status=302)
    fake_site.redirect("https://loop.example/b", "/a", status=302)

    outcome = await prober.probe("https://loop.example/a")

    assert len(outcome.redirect_chain) == 10
    assert outcome.accessible is False
    assert outcome.http_status == 302
    assert outcome.blocked_reason == "Redirect limit reached"
    assert fake_site.calls("GET") == []


@pytest.mark.asyncio
async def test_redirect_without_location_ends_loop(fake_site, prober):
    fake_site.add("https://example.com/moved", status=301)

    outcome = await prober.probe("https://example.com/moved")

    assert outcome.redirect_chain == ()
    assert outcome.http_status == 301
    assert outcome.accessible is False


@pytest.mark.asyncio
async def test_head_not_allowed_falls_back_to_get(fake_site, prober):
    fake_site.add("https://example.com/", status=405, method="HEAD")
    fake_site.html("https://example.com/")

    outcome = await prober.probe("https://example.com/")

    assert outcome.accessible is True
    assert [method for method, _ in fake_site.requests] == ["HEAD", "GET", "GET"]


@pytest.mark.asyncio
async def test_forbidden_page_is_blocked_with_reason(fake_site, prober):
    fake_site.html("https://example.com/private", status=403)

    outcome = await prober.probe("https://example.com/private")

    assert outcome.accessible is False
    assert outcome.http_status == 403
    assert outcome.blocked_reason == "HTTP 403"
    assert outcome.content_type == HTML
    assert fake_site.calls("GET") == []


@pytest.mark.asyncio
async def test_non_html_content_is_not_accessible(fake_site, prober):
    fake_site.add("https://example.com/report.pdf", body=b"%PDF-1.7", headers=[("content-type", "application/pdf")])

    outcome = await prober.probe("https://example.com/report.pdf")

    assert outcome.accessible is False
    assert outcome.http_status == 200
    assert outcome.content_type == "application/pdf"
    assert outcome.blocked_reason == "Non-HTML content: application/pdf"


@pytest.mark.asyncio
async def test_cloudflare_cookie_and_challenge_page(fake_site, prober):
    body = "<html><head><title>Just a moment...</title></head><body>Checking your browser</body></html>"
    fake_site.html(
        "https://protected.example/",
        body=body,
        status=503,
        headers=[("set-cookie", "__cf_bm=abc; path=/"), ("cf-mitigated", "challenge")],
    )

    outcome = await prober.probe("https://protected.example/")

    assert outcome.accessible is False
    assert outcome.http_status == 503
    assert BotVendor.CLOUDFLARE in outcome.vendors
    assert outcome.has_bot_signals is True


@pytest.mark.asyncio
async def test_bot_markers_in_accessible_body(fake_site, prober):
    body = (
        "<html><body><form><div class=\"g-recaptcha\" data-sitekey=\"x\"></div></form>"
        + "<p>Contact us with your question and we will respond quickly.</p>" * 3
        + "</body></html>"
    )
    fake_site.html("https://example.com/contact", body=body)

    outcome = await prober.probe("https://example.com/contact")

    assert outcome.accessible is True
    assert outcome.vendors == (BotVendor.RECAPTCHA,)


@pytest.mark.asyncio
async def test_spa_shell_requires_js(fake_site, prober):
    body = '<html><body><div id="root"></div><script src="/static/js/main.js"></script></body></html>'
    fake_site.html("https://app.example/", body=body)

    outcome = await prober.probe("https://app.example/")

    assert outcome.accessible is True
    assert outcome.js_required is True


@pytest.mark.asyncio
async def test_spa_shell_cut_by_body_cap_requires_js(fake_site):
    body = (
        "<html><head><title>App</title></head>"
        "<body><div id=\"mount\"></div><script src=\"/static/app.js\"></script></body></html>"
    )
    fake_site.html("https://app.example/", body=body)
    prober = UrlProber(transport=fake_site.transport, max_body_bytes=body.index("</body>"))

    outcome = await prober.probe("https://app.example/")

    assert "</body>" not in outcome.body_sample
    assert outcome.js_required is True


@pytest.mark.asyncio
async def test_body_sample_is_capped(fake_site):
    fake_site.html("https://example.com/big", body="<html><body>" + "a" * 5000 + "</body></html>")
    prober = UrlProber(transport=fake_site.transport, max_body_bytes=1024)

    outcome = await prober.probe("https://example.com/big")

    assert len(outcome.body_sample) == 1024


@pytest.mark.asyncio
async def test_dns_failure(fake_site, prober):
    fake_site.fail("https://nope.invalid/", httpx.ConnectError("[Errno -2] Name or service not known"))

    outcome = await prober.probe("https://nope.invalid/")

    assert outcome.http_status == 0
    assert outcome.accessible is False
    assert outcome.blocked_reason == "DNS resolution failed"


@pytest.mark.asyncio
async def test_connection_refused(fake_site, prober):
    fake_site.fail("https://example.com:8443/", httpx.ConnectError("[Errno 111] Connection refused"))

    outcome = await prober.probe("https://example.com:8443/")

    assert outcome.http_status == 0
    assert outcome.blocked_reason == "Connection refused"


@pytest.mark.asyncio
async def test_client_timeout(fake_site, prober):
    fake_site.fail("https://slow.example/", httpx.ReadTimeout("timed out"))

    outcome = await prober.probe("https://slow.example/")

    assert outcome.http_status == 408
    assert outcome.blocked_reason == "Timeout"


@pytest.mark.asyncio
async def test_probe_deadline_keeps_redirect_chain(fake_site, prober):
    fake_site.redirect("https://slow.example/", "https://slow.example/landing")
    fake_site.html("https://slow.example/landing", delay=1.0)

    outcome = await prober.probe("https://slow.example/", timeout=0.2)

    assert outcome.http_status == 408
    assert outcome.blocked_reason == "Timeout"
    assert outcome.final_url == "https://slow.example/landing"
    assert len(outcome.redirect_chain) == 1


@pytest.mark.asyncio
async def test_unexpected_client_error_is_reported(fake_site, prober):
    fake_site.fail("https://example.com/", httpx.RemoteProtocolError("Server disconnected without sending a response."))

    outcome = await prober.probe("https://example.com/")

    assert outcome.http_status == 0
    assert outcome.blocked_reason == "Network error: Server disconnected without sending a response."


@pytest.mark.parametrize(
    "error, reason",
    [
        (httpx.ConnectTimeout("timed out"), "Timeout"),
        (httpx.ConnectError("[Errno 8] nodename nor servname provided, or not known"), "DNS resolution failed"),
        (httpx.ConnectError("[Errno 61] Connection refused"), "Connection refused"),
        (httpx.ConnectError("[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed"), "SSL/TLS error"),
        (httpx.ReadError("boom"), "Network error: boom"),
    ],
)
def test_classify_network_error(error, reason):
    assert classify_network_error(error) == reason


@pytest.mark.parametrize(
    "content_type, expected",
    [("text/html", True), ("application/xhtml+xml", True), ("application/json", False), (None, False)],
)
def test_is_html_content_type(content_type, expected):
    assert is_html_content_type(content_type) is expected
