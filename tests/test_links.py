"""Tests for link checking and the link management engine."""

import json
from collections import Counter
from unittest.mock import Mock, patch

import pytest
import requests
from bs4 import BeautifulSoup

from autoblog.models import Article
from autoblog.pipeline.links import LinkManager, _injection_points, check_link
from autoblog.providers import Provider
from autoblog.storage import JsonArticleStore
from tests.conftest import ScriptedProvider, paragraph

SITE = "https://example.com"


def _body(internal: int = 0, external: int = 0, paragraphs: int = 8) -> str:
    parts = ["<h1>Serverless Architecture Explained</h1>"]
    links = [f'<a href="/blog/existing-{i}">existing {i}</a>' for i in range(internal)]
    links += [f'<a href="https://ext{i}.example.net/page">source {i}</a>' for i in range(external)]
    per = -(-len(links) // paragraphs)
    for i in range(paragraphs):
        chunk = links[i * per:(i + 1) * per]
        parts.append(paragraph(1)[:-4] + (" See " + ", ".join(chunk) + "." if chunk else "") + "</p>")
        if i % 3 == 0:
            parts.append(f"<h2>Part {i}</h2>")
    return "\n".join(parts)


def _hrefs(html: str) -> list[str]:
    return [a["href"] for a in BeautifulSoup(html, "html.parser").find_all("a", href=True)]


@pytest.fixture
def store(tmp_path):
    store = JsonArticleStore(tmp_path / "articles.json")
    for i in range(6):
        store.save(Article(title=f"Related story {i}", slug=f"related-{i}", content="<p>x</p>", category="Technology"))
    store.save(Article(title="Other category", slug="other", content="<p>x</p>", category="Sports"))
    return store


@pytest.fixture
def manager(hub, store):
    return LinkManager(hub, store, site_url=SITE, checker=lambda url: True, year=2025)


class TestCheckLink:
    @patch("autoblog.pipeline.links.requests.head")
    def test_head_ok(self, mock_head):
        mock_head.return_value = Mock(status_code=200)
        assert check_link("https://example.org") is True

    @patch("autoblog.pipeline.links.requests.get")
    @patch("autoblog.pipeline.links.requests.head")
    def test_falls_back_to_get_on_405(self, mock_head, mock_get):
        mock_head.return_value = Mock(status_code=405)
        mock_get.return_value = Mock(status_code=200)
        assert check_link("https://example.org") is True
        assert mock_get.call_args.kwargs["stream"] is True

    @patch("autoblog.pipeline.links.requests.get")
    @patch("autoblog.pipeline.links.requests.head")
    def test_get_error_status_is_invalid(self, mock_head, mock_get):
        mock_head.side_effect = requests.Timeout("slow")
        mock_get.return_value = Mock(status_code=404)
        assert check_link("https://example.org") is False

    @patch("autoblog.pipeline.links.requests.get")
    @patch("autoblog.pipeline.links.requests.head")
    def test_connection_failure_is_invalid(self, mock_head, mock_get):
        mock_head.side_effect = requests.ConnectionError("refused")
        mock_get.side_effect = requests.ConnectionError("refused")
        assert check_link("https://example.org") is False

    def test_non_http_scheme(self):
        assert check_link("ftp://example.org/file") is False

    @patch("autoblog.pipeline.links.requests.head")
    def test_uses_browser_user_agent_and_timeout(self, mock_head):
        mock_head.return_value = Mock(status_code=301)
        check_link("https://example.org")
        kwargs = mock_head.call_args.kwargs
        assert kwargs["timeout"] == 5
        assert "Mozilla" in kwargs["headers"]["User-Agent"]


class TestInjectionPoints:
    def test_spread_over_article(self):
        assert _injection_points(10, 3) == [1, 5, 8]

    def test_clipped_for_short_articles(self):
        assert _injection_points(2, 4) == [1, 1, 0, 1]

    def test_no_paragraphs(self):
        assert _injection_points(0, 3) == []


class TestLinkCaps:
    @pytest.mark.parametrize("n", [0, 1, 4, 10])
    def test_caps_hold_for_any_input(self, manager, n):
        report = manager.process(_body(internal=n, external=n), "Technology", title="Serverless", current_slug="new")
        hrefs = _hrefs(report.html)

        assert report.internal_count <= 4
        assert report.external_count <= 4
        assert report.internal_count + report.external_count <= 7
        assert len(hrefs) == len(set(hrefs))
        assert len(hrefs) == report.internal_count + report.external_count

    @pytest.mark.parametrize("n", [1, 4, 10])
    def test_existing_external_links_capped_at_three(self, manager, n):
        report = manager.process(_body(external=n), "Technology")
        assert report.external_count == min(n, 3)

    @pytest.mark.parametrize("n", [4, 10])
    def test_internal_links_keep_first_four(self, manager, n):
        report = manager.process(_body(internal=n, external=1), "Technology")
        internal = [link.url for link in report.links if link.kind == "internal"]
        assert internal == [f"/blog/existing-{i}" for i in range(4)]

    def test_duplicate_hrefs_demoted(self, manager):
        html = (
            '<p>One <a href="https://a.example.org">first</a>.</p>'
            '<p>Two <a href="https://a.example.org">again</a>.</p>'
        )
        report = manager.process(html, "Technology")
        counts = Counter(_hrefs(report.html))
        assert counts["https://a.example.org"] == 1
        assert "again" in report.html

    def test_same_host_absolute_url_is_internal(self, manager):
        report = manager.process('<p>See <a href="https://www.example.com/blog/x">x</a>.</p>', "Technology")
        assert report.links[0].kind == "internal"


class TestValidation:
    def test_broken_links_demoted_to_text(self, hub, store):
        checker = lambda url: "ok" in url
        manager = LinkManager(hub, store, site_url=SITE, checker=checker, year=2025)
        html = (
            '<p>A <a href="https://ok.example.org">good</a> and '
            '<a href="https://dead.example.org">dead source</a>.</p>' + paragraph()
        )
        report = manager.process(html, "Technology")
        assert "https://dead.example.org" not in report.html
        assert "dead source" in report.html
        good = BeautifulSoup(report.html, "html.parser").find("a", href="https://ok.example.org")
        assert good["rel"] == ["dofollow"] or good["rel"] == "dofollow"
        assert good["target"] == "_blank"

    def test_no_discovery_when_a_valid_link_exists(self, hub, store, chat):
        manager = LinkManager(hub, store, site_url=SITE, checker=lambda url: True, year=2025)
        manager.process('<p>A <a href="https://ok.example.org">good</a>.</p>', "Technology")
        assert "link_score" not in chat.tasks()


class TestDiscovery:
    def test_adds_scored_links_when_none_valid(self, manager, chat):
        report = manager.process(_body(), "Technology", title="Serverless")
        external = [link for link in report.links if link.kind == "external"]
        assert len(external) == 2
        assert all(link.anchor == "serverless background" for link in external)
        assert chat.tasks().count("link_score") == 2

    def test_query_uses_h1_category_and_year(self, store, make_hub):
        queries = []

        def search(payload, timeout):
            queries.append(payload["query"])
            return []

        hub = make_hub(search=search)
        manager = LinkManager(hub, store, site_url=SITE, checker=lambda url: True, year=2025)
        manager.process(_body(), "Technology", title="Ignored title")
        assert queries == ["Serverless Architecture Explained Technology related articles 2025"]

    def test_title_used_without_h1(self, store, make_hub):
        queries = []
        hub = make_hub(search=lambda p, t: queries.append(p["query"]) or [])
        manager = LinkManager(hub, store, site_url=SITE, checker=lambda url: True, year=2025)
        manager.process("<h2>Section</h2>" + paragraph(), "Technology", title="Edge Computing")
        assert queries[0].startswith("Edge Computing Technology")

    def test_low_scores_rejected(self, store, make_hub):
        chat = ScriptedProvider({"link_score": json.dumps({"score": 40, "anchor": "meh"})})
        hub = make_hub([Provider("chat-1", chat)])
        manager = LinkManager(hub, store, site_url=SITE, checker=lambda url: True, year=2025)
        report = manager.process(_body(), "Technology")
        assert report.external_count == 0

    def test_one_forced_acceptance_when_scorer_exhausted(self, store, make_hub):
        chat = ScriptedProvider({"link_score": "no idea"})
        hub = make_hub([Provider("chat-1", chat)])
        manager = LinkManager(hub, store, site_url=SITE, checker=lambda url: True, year=2025)
        report = manager.process(_body(), "Technology")
        assert report.external_count == 1

    def test_skips_internal_and_present_candidates(self, store, make_hub):
        results = [
            {"url": "https://example.com/blog/ours", "title": "Ours", "snippet": "x"},
            {"url": "https://fresh.example.org/a", "title": "Fresh", "snippet": "y"},
        ]
        hub = make_hub(search=lambda p, t: results)
        manager = LinkManager(hub, store, site_url=SITE, checker=lambda url: False, year=2025)
        report = manager.process(_body(), "Technology")
        external = [link.url for link in report.links if link.kind == "external"]
        assert external == ["https://fresh.example.org/a"]

    def test_search_unavailable(self, store, make_hub):
        hub = make_hub(search=lambda p, t: [])
        manager = LinkManager(hub, store, site_url=SITE, checker=lambda url: True, year=2025)
        report = manager.process(_body(), "Technology")
        assert report.external_count == 0
        assert any("search unavailable" in line for line in report.logs)


class TestInternalInjection:
    def test_injects_related_articles_newest_first(self, manager):
        report = manager.process(_body(external=1), "Technology", current_slug="new")
        internal = [link.url for link in report.links if link.kind == "internal"]
        assert sorted(internal) == ["/blog/related-2", "/blog/related-3", "/blog/related-4", "/blog/related-5"]

    def test_templates_rotate(self, manager):
        report = manager.process(_body(external=1), "Technology")
        assert "You might also like:" in report.html
        assert "Related reading:" in report.html

    def test_skips_already_linked_and_current(self, manager):
        html = _body(external=1) + '<p>See <a href="/blog/related-5">five</a>.</p>'
        report = manager.process(html, "Technology", current_slug="related-4")
        internal = [link.url for link in report.links if link.kind == "internal"]
        assert internal.count("/blog/related-5") == 1
        assert "/blog/related-4" not in internal
        assert len(internal) == 4

    def test_other_categories_not_linked(self, manager):
        report = manager.process(_body(external=1), "Technology")
        assert "/blog/other" not in _hrefs(report.html)

    def test_respects_total_cap(self, manager):
        report = manager.process(_body(internal=2, external=3), "Technology")
        assert report.internal_count == 4
        assert report.external_count == 3

    def test_no_store(self, hub):
        manager = LinkManager(hub, None, site_url=SITE, checker=lambda url: True, year=2025)
        report = manager.process(_body(external=1), "Technology")
        assert report.internal_count == 0


class TestRelink:
    def test_internal_only_without_network(self, hub, store, chat):
        checker = Mock(side_effect=AssertionError("no link checks during relink"))
        manager = LinkManager(hub, store, site_url=SITE, checker=checker, year=2025)

        report = manager.relink(_body(external=5), "Technology", current_slug="related-0")

        assert report.internal_count == 4
        assert report.external_count == 3
        assert "/blog/related-0" not in _hrefs(report.html)
        checker.assert_not_called()
        assert chat.calls == []
