import re
from concurrent.futures import ThreadPoolExecutor

import requests

from conftest import DummyResponse, FakeSession, license_text, page, redirect

from license_resolver import text_matcher
from license_resolver.fetching import HttpFetcher
from license_resolver.tables import OperatorTables, Redirect
from license_resolver.text_matcher import TextMatcher
from license_resolver.types import ResolverSettings, Single, Unresolved, render
from license_resolver.url_resolver import UrlResolver, canonical_links, extract_texts


MIT_TEXT = license_text("MIT").replace("<year> <copyright holders>", "2021 Jane Doe")
CUSTOM_TEXT = "FooCorp Proprietary License\n\nYou may look at this software but you may not run it."


def _resolver(registry, routes, tables=None, **settings):
    session = FakeSession(routes)
    settings = ResolverSettings(**settings)
    fetcher = HttpFetcher(settings, session=session)
    resolver = UrlResolver(registry, TextMatcher(registry), fetcher, tables=tables, settings=settings)
    return resolver, session


def test_redirect_chain_is_memoized_for_every_hop(registry):
    routes = {
        "https://a.example.test/license": redirect("https://b.example.test/license"),
        "https://b.example.test/license": redirect("/moved", status=302),
        "https://b.example.test/moved": redirect("https://d.example.test/LICENSE.txt", status=307),
        "https://d.example.test/LICENSE.txt": page(MIT_TEXT),
    }
    resolver, session = _resolver(registry, routes)

    assert resolver.resolve("https://a.example.test/license") == Single("MIT")
    assert len(session.calls) == 4

    assert resolver.resolve("https://b.example.test/license") == Single("MIT")
    assert resolver.resolve("https://b.example.test/moved") == Single("MIT")
    assert len(session.calls) == 4
    assert resolver.fetcher.fetch_count == 4


def test_known_reference_url_needs_no_fetch(registry):
    resolver, session = _resolver(registry, {})
    assert resolver.resolve("https://www.apache.org/licenses/LICENSE-2.0.html") == Single("Apache-2.0")
    assert session.calls == []


def test_canonical_link_header_is_followed(registry):
    routes = {
        "https://mirror.example.test/mit": page(
            "<html><body>moved</body></html>",
            content_type="text/html",
            links={"canonical": {"url": "https://opensource.org/licenses/MIT", "rel": "canonical"}},
        )
    }
    resolver, session = _resolver(registry, routes)
    assert resolver.resolve("https://mirror.example.test/mit") == Single("MIT")
    assert session.calls == ["https://mirror.example.test/mit"]


def test_html_head_canonical_link_to_known_url(registry):
    markup = (
        '<html><head><link rel="canonical" href="https://spdx.org/licenses/ISC.html"></head>'
        "<body><p>ISC license page</p></body></html>"
    )
    routes = {"https://isc.example.test/": page(markup, content_type="text/html; charset=utf-8")}
    resolver, _ = _resolver(registry, routes)
    assert resolver.resolve("https://isc.example.test/") == Single("ISC")


def test_html_page_text_is_matched(registry):
    paragraphs = "".join(f"<p>{block}</p>" for block in MIT_TEXT.split("\n\n"))
    markup = f"<html><body><nav>Home | Projects</nav><main>{paragraphs}</main></body></html>"
    routes = {"https://project.example.test/license.html": page(markup, content_type="text/html")}
    resolver, _ = _resolver(registry, routes)

    assert resolver.resolve("https://project.example.test/license.html") == Single("MIT")
    assert registry.by_url("https://project.example.test/license.html").id == "MIT"


def test_missing_page_is_unresolved_with_hint(registry):
    resolver, _ = _resolver(registry, {})
    result = resolver.resolve("https://gone.example.test/LICENSE", "FooCorp License")
    assert result == Unresolved(raw_id="FooCorp License", source_urls=("https://gone.example.test/LICENSE",))
    assert result.is_url_only


def test_custom_text_is_unresolved_with_text(registry):
    routes = {"https://foocorp.example.test/license": page(CUSTOM_TEXT)}
    resolver, _ = _resolver(registry, routes)
    result = resolver.resolve("https://foocorp.example.test/license", "FooCorp License")
    assert isinstance(result, Unresolved)
    assert result.raw_id == "FooCorp License"
    assert "may not run it" in result.raw_text
    assert result.source_urls == ("https://foocorp.example.test/license",)


def test_redirect_table_applies_when_fetch_fails(registry):
    tables = OperatorTables(
        redirects=[Redirect(re.compile(r"https://old\.example\.test/(.+)"), r"https://new.example.test/\1")]
    )
    routes = {
        "https://old.example.test/LICENSE": requests.ConnectionError("connection refused"),
        "https://new.example.test/LICENSE": page(MIT_TEXT),
    }
    resolver, session = _resolver(registry, routes, tables=tables)
    assert resolver.resolve("https://old.example.test/LICENSE") == Single("MIT")
    assert session.calls == ["https://old.example.test/LICENSE", "https://new.example.test/LICENSE"]


def test_bundled_redirect_reaches_seeded_url_offline(registry):
    resolver, session = _resolver(registry, {}, offline=True)
    result = resolver.resolve("http://glassfish.java.net/public/CDDL+GPL_1_1.html")
    assert render(result) == "(CDDL-1.1 OR GPL-2.0-only WITH Classpath-exception-2.0)"
    assert session.calls == []


def test_redirect_loop_terminates(registry):
    routes = {
        "https://loop.example.test/a": redirect("https://loop.example.test/b"),
        "https://loop.example.test/b": redirect("https://loop.example.test/a"),
    }
    resolver, _ = _resolver(registry, routes)
    result = resolver.resolve("https://loop.example.test/a")
    assert isinstance(result, Unresolved)
    assert "https://loop.example.test/a" in result.source_urls


def test_overlong_redirect_chain_is_cut(registry):
    routes = {
        f"https://hop.example.test/{index}": redirect(f"https://hop.example.test/{index + 1}")
        for index in range(10)
    }
    routes["https://hop.example.test/10"] = page(MIT_TEXT)
    resolver, session = _resolver(registry, routes, max_redirects=3)
    assert isinstance(resolver.resolve("https://hop.example.test/0"), Unresolved)
    assert len(session.calls) <= 5


def test_concurrent_callers_share_one_fetch(registry):
    routes = {"https://shared.example.test/LICENSE": page(MIT_TEXT)}
    resolver, session = _resolver(registry, routes)
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: resolver.resolve("https://shared.example.test/LICENSE"), range(24)))
    assert set(results) == {Single("MIT")}
    assert session.calls.count("https://shared.example.test/LICENSE") == 1


def test_server_error_is_unresolved(registry):
    routes = {"https://flaky.example.test/LICENSE": DummyResponse(503, "unavailable")}
    resolver, _ = _resolver(registry, routes)
    assert resolver.resolve("https://flaky.example.test/LICENSE") == Unresolved(
        source_urls=("https://flaky.example.test/LICENSE",)
    )


def test_extract_texts_prefers_specific_regions():
    markup = (
        "<html><body><div class='content'><p>First</p><p>Second</p></div>"
        "<footer>Footer</footer></body></html>"
    )
    texts = extract_texts(markup)
    assert texts[0] == "First\nSecond"
    assert "Footer" in texts[-1]


def test_canonical_links_read_from_head():
    markup = '<html><head><link rel="canonical" href="/licenses/MIT"></head><body></body></html>'
    assert canonical_links(markup) == ["/licenses/MIT"]


def test_text_matched_to_license_outside_curated_set(registry, monkeypatch):
    def analyse(text):
        return {"licenses": {"EPL-2.0": {}}, "exceptions": {}}, 1.0

    monkeypatch.setattr(text_matcher.spdx_matcher, "analyse_license_text", analyse)
    routes = {"https://eclipse.example.test/legal/epl-2.0.txt": page("Eclipse Public License - v 2.0\n\nTHE ACCOMPANYING PROGRAM IS PROVIDED ...")}
    resolver, _ = _resolver(registry, routes)

    assert resolver.resolve("https://eclipse.example.test/legal/epl-2.0.txt") == Single("EPL-2.0")
    assert registry.expression_for_url("https://eclipse.example.test/legal/epl-2.0.txt") == Single("EPL-2.0")
