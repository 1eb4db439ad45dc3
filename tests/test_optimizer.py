"""Tests for the structural-fix pass, AI-artifact cleanup and the optimize stage."""

from bs4 import BeautifulSoup

from autoblog.pipeline.optimizer import (
    build_toc,
    cleanup_ai_artifacts,
    normalize_punctuation,
    optimize_content,
    structural_fix,
)
from autoblog.providers import Provider, ProviderError
from autoblog.text import word_count
from tests.conftest import SENTENCE, FailingProvider, ScriptedProvider, article_html, paragraph


class TestNormalizePunctuation:
    def test_em_dash_becomes_comma(self):
        assert normalize_punctuation("Fast—and cheap") == "Fast, and cheap"
        assert normalize_punctuation("Fast — and cheap") == "Fast, and cheap"

    def test_spaced_en_dash(self):
        assert normalize_punctuation("2020 – 2024 was busy") == "2020, 2024 was busy"

    def test_range_en_dash_kept(self):
        assert normalize_punctuation("pages 10–12") == "pages 10–12"

    def test_no_double_commas(self):
        assert normalize_punctuation("Yes, — no") == "Yes, no"


class TestStructuralFix:
    def test_removes_h1(self):
        html, _ = structural_fix("<h1>Title</h1><p>Body.</p>")
        assert "<h1>" not in html
        assert "<p>Body.</p>" in html

    def test_heading_ids_and_toc(self):
        html, toc = structural_fix("<p>Intro.</p><h2>Getting Started</h2><p>a</p><h3>Install It</h3><p>b</p>")
        assert '<h2 id="getting-started">' in html
        assert '<h3 id="install-it">' in html
        assert [(t.level, t.title, t.id) for t in toc] == [
            (2, "Getting Started", "getting-started"),
            (3, "Install It", "install-it"),
        ]

    def test_colliding_ids_get_suffix(self):
        _, toc = structural_fix("<h2>Setup</h2><p>a</p><h2>Setup</h2><p>b</p><h2>Setup</h2><p>c</p>")
        assert [t.id for t in toc] == ["setup", "setup-2", "setup-3"]

    def test_existing_unique_id_kept(self):
        _, toc = structural_fix('<h2 id="custom">Setup</h2><p>a</p><h2>Setup</h2><p>b</p>')
        assert [t.id for t in toc] == ["custom", "setup"]

    def test_duplicate_existing_ids_replaced(self):
        _, toc = structural_fix('<h2 id="x">One</h2><p>a</p><h2 id="x">Two</h2><p>b</p>')
        assert [t.id for t in toc] == ["one", "two"]

    def test_long_paragraph_split(self):
        html, _ = structural_fix(paragraph(10))
        soup = BeautifulSoup(html, "html.parser")
        paragraphs = soup.find_all("p")
        assert len(paragraphs) > 1
        assert all(len(p.get_text().split()) <= 80 for p in paragraphs)
        assert " ".join(p.get_text() for p in paragraphs) == " ".join([SENTENCE] * 10)

    def test_split_keeps_inline_markup(self):
        long = (
            "<p>" + " ".join([SENTENCE] * 4)
            + ' See <a href="https://example.org/x">the <strong>full</strong> study</a> for details. '
            + " ".join([SENTENCE] * 4) + "</p>"
        )
        html, _ = structural_fix(long)
        soup = BeautifulSoup(html, "html.parser")
        link = soup.find("a")
        assert link is not None
        assert link.get_text() == "the full study"
        assert link.find("strong") is not None

    def test_short_paragraph_untouched(self):
        html, _ = structural_fix(paragraph(2))
        assert html == paragraph(2)

    def test_em_dashes_removed_everywhere(self):
        html, _ = structural_fix("<h2>Speed—Matters</h2><p>It is fast — really fast.</p>")
        assert "—" not in html

    def test_idempotent(self):
        source = (
            article_html(sections=4, paras=2)
            + "<h2>Setup</h2>" + paragraph(12) + "<h2>Setup</h2><p>Costs—low.</p>"
        )
        once, toc_once = structural_fix(source)
        twice, toc_twice = structural_fix(once)
        assert once == twice
        assert toc_once == toc_twice

    def test_wrapped_document_unwrapped(self):
        html, _ = structural_fix("<!DOCTYPE html><html><body><h2>A</h2><p>b</p></body></html>")
        assert html.startswith("<h2")
        assert "DOCTYPE" not in html


class TestBuildToc:
    def test_skips_headings_without_id(self):
        toc = build_toc('<h2 id="a">A</h2><h2>B</h2>')
        assert [t.id for t in toc] == ["a"]


class TestCleanupAiArtifacts:
    def test_removes_conclusion_lead(self):
        html = cleanup_ai_artifacts("<p>In conclusion, serverless saves money.</p>", "Serverless")
        assert html == "<p>Serverless saves money.</p>"

    def test_removes_mid_paragraph_lead(self):
        html = cleanup_ai_artifacts("<p>It scales. Ultimately, it is cheaper.</p>", "x")
        assert html == "<p>It scales. It is cheaper.</p>"

    def test_removes_ai_note(self):
        html = cleanup_ai_artifacts("<p>Great tool. Note: This article is AI-generated.</p>", "x")
        assert "AI-generated" not in html
        assert "Great tool." in html

    def test_unbolds_topic_restatement(self):
        html = cleanup_ai_artifacts("<p><strong>Edge Computing</strong> is growing.</p>", "edge computing")
        assert html == "<p>Edge Computing is growing.</p>"

    def test_keeps_other_leading_bold(self):
        html = cleanup_ai_artifacts("<p><strong>Tip:</strong> cache results.</p>", "edge computing")
        assert "<strong>Tip:</strong>" in html

    def test_caps_bold_count(self):
        body = "".join(f"<p><b>term{i}</b> explained here.</p>" for i in range(12))
        html = cleanup_ai_artifacts(body, "x")
        assert len(BeautifulSoup(html, "html.parser").find_all("b")) == 5

    def test_drops_empty_paragraphs(self):
        assert cleanup_ai_artifacts("<p> </p><p>Text.</p>", "x") == "<p>Text.</p>"


class TestOptimizeContent:
    def test_uses_rewrite(self, make_hub):
        rewrite = article_html(title="Rewritten", sections=5)
        chat = ScriptedProvider({"optimize": rewrite})
        result = optimize_content(make_hub([Provider("chat-1", chat)]), article_html(), "Serverless")
        assert result.optimized
        assert "<h1>" not in result.html
        assert len(result.toc) == 5

    def test_rejects_malformed_rewrite(self, make_hub):
        chat = ScriptedProvider({"optimize": "<h2>Broken<p>never closed"})
        draft = article_html()
        result = optimize_content(make_hub([Provider("chat-1", chat)]), draft, "x")
        assert not result.optimized
        assert result.html == structural_fix(draft)[0]

    def test_rejects_rewrite_that_loses_content(self, make_hub):
        chat = ScriptedProvider({"optimize": "<h2>Short</h2><p>Too short now.</p>"})
        result = optimize_content(make_hub([Provider("chat-1", chat)]), article_html(), "x")
        assert not result.optimized
        assert word_count(result.html) > 500

    def test_exhausted_chain_still_fixes_structure(self, make_hub):
        hub = make_hub([Provider("chat-1", FailingProvider(ProviderError("down", status=500)))])
        result = optimize_content(hub, "<h1>T</h1><h2>A</h2><p>x</p>", "x")
        assert not result.optimized
        assert result.html == '<h2 id="a">A</h2><p>x</p>'
        assert [t.id for t in result.toc] == ["a"]
