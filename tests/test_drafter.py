"""Tests for the draft stage: HTML normalisation, word bounds, local fallback."""

import json

from autoblog.config import FALLBACK_KEYWORDS
from autoblog.pipeline.drafter import (
    ensure_html,
    extract_title,
    generate_draft,
    generate_keywords,
    generate_scraped_fallback,
    strip_code_fences,
    truncate_html,
)
from autoblog.providers import Provider, ProviderError
from autoblog.text import word_count
from tests.conftest import FailingProvider, ScriptedProvider, article_html, paragraph


class TestEnsureHtml:
    def test_html_kept(self):
        html = "<h2>Intro</h2><p>Text</p>"
        assert ensure_html(html) == html

    def test_markdown_converted(self):
        html = ensure_html("## Intro\n\nSome **bold** text.")
        assert "<h2>Intro</h2>" in html
        assert "<strong>bold</strong>" in html

    def test_code_fences_stripped(self):
        assert strip_code_fences("```html\n<p>Hi</p>\n```") == "<p>Hi</p>"
        assert ensure_html("```html\n<p>Hi</p>\n```") == "<p>Hi</p>"


class TestExtractTitle:
    def test_first_h1(self):
        assert extract_title("<h1>Main Title</h1><h1>Other</h1>") == "Main Title"

    def test_missing(self):
        assert extract_title("<h2>Only sections</h2>") is None


class TestTruncateHtml:
    def test_short_article_unchanged(self):
        html = "<h2>A</h2>" + paragraph()
        assert truncate_html(html, 1000) == html

    def test_cuts_at_sentence_boundary(self):
        html = "<h2>A</h2>" + paragraph(10)
        cut = truncate_html(html, 40)
        assert word_count(cut) <= 40
        assert cut.endswith("incidents.</p>")

    def test_drops_blocks_after_limit(self):
        html = paragraph(2) + "<h2>Later</h2>" + paragraph(2)
        cut = truncate_html(html, 20)
        assert "Later" not in cut


class TestGenerateDraft:
    def test_draft_within_bounds(self, hub, chat):
        draft = generate_draft(hub, "Serverless Architecture Explained", "Technology", "Research findings:\n...")
        assert draft.source == "provider"
        assert draft.title == "Serverless Architecture Explained"
        assert draft.words >= 500
        assert chat.tasks() == ["draft"]

    def test_short_draft_expanded_once(self, make_hub):
        chat = ScriptedProvider({"draft": article_html(sections=1, paras=1)})
        hub = make_hub([Provider("chat-1", chat)])
        draft = generate_draft(hub, "Topic", "Technology", "")
        assert chat.tasks() == ["draft", "expand"]
        assert draft.words >= 500

    def test_shorter_expansion_discarded(self, make_hub):
        short = article_html(sections=1, paras=1)
        chat = ScriptedProvider({"draft": short, "expand": "<p>Tiny.</p>"})
        hub = make_hub([Provider("chat-1", chat)])
        draft = generate_draft(hub, "Topic", "Technology", "")
        assert draft.words == word_count(short)

    def test_long_draft_truncated(self, make_hub):
        chat = ScriptedProvider({"draft": article_html(sections=30, paras=4)})
        hub = make_hub([Provider("chat-1", chat)])
        draft = generate_draft(hub, "Topic", "Technology", "")
        assert draft.words <= 5000

    def test_exhausted_chain_uses_local_fallback(self, make_hub):
        hub = make_hub([Provider("chat-1", FailingProvider(ProviderError("payment", status=402)))])
        draft = generate_draft(hub, "Edge Computing", "Technology", "")
        assert draft.source == "fallback"
        assert draft.title == "Edge Computing"
        assert "<h2>Background</h2>" in draft.html


class TestScrapedFallback:
    RESEARCH = (
        "Research findings:\n"
        "Source: Wikipedia (Edge computing)\n"
        "From: https://en.wikipedia.org/wiki/Edge_computing\n"
        "Edge computing moves processing closer to devices.\n"
        "It reduces latency for interactive workloads."
    )

    def test_uses_research_paragraphs_and_source_link(self):
        draft = generate_scraped_fallback("Edge Computing", "Technology", self.RESEARCH)
        assert "Edge computing moves processing closer to devices." in draft.html
        assert 'href="https://en.wikipedia.org/wiki/Edge_computing"' in draft.html
        assert draft.html.count("<h2>") == 4

    def test_without_research(self):
        draft = generate_scraped_fallback("Edge Computing", "Technology", "")
        assert draft.html.count("<h2>") == 4
        assert "<a " not in draft.html

    def test_escapes_topic(self):
        draft = generate_scraped_fallback("Cats & <Dogs>", "Pets", "")
        assert "Cats &amp; &lt;Dogs&gt;" in draft.html


class TestGenerateKeywords:
    def test_keywords_from_provider(self, hub):
        assert generate_keywords(hub, "Serverless", "Technology") == ["serverless", "cloud functions", "devops"]

    def test_capped_at_eight(self, make_hub):
        chat = ScriptedProvider({"keywords": json.dumps({"keywords": [f"k{i}" for i in range(12)]})})
        hub = make_hub([Provider("chat-1", chat)])
        assert len(generate_keywords(hub, "x", "y")) == 8

    def test_fallback_when_reply_is_not_json(self, make_hub):
        chat = ScriptedProvider({"keywords": "Sure! Here are some keywords."})
        hub = make_hub([Provider("chat-1", chat)])
        assert generate_keywords(hub, "x", "y") == FALLBACK_KEYWORDS
