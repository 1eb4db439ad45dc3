"""Tests for SVG rendering, signatures and the three thumbnail tiers."""

import json
import xml.etree.ElementTree as ET

import pytest

from autoblog.pipeline.thumbnail import (
    SignatureIndex,
    ThumbnailEngine,
    VisualSpec,
    content_signature,
    minify_svg,
    render_placeholder,
    render_svg,
    topic_elements,
)
from autoblog.providers import Provider
from tests.conftest import OTHER_VISUAL_SPEC, VISUAL_SPEC, ScriptedProvider, article_html

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def engine(hub, tmp_path):
    return ThumbnailEngine(hub, output_dir=tmp_path)


class TestTopicElements:
    def test_most_frequent_first(self):
        assert topic_elements("Serverless code for developers on the cloud") == ["code", "chip"]

    def test_no_triggers(self):
        assert topic_elements("A quiet afternoon") == []


class TestVisualSpec:
    def test_valid_spec_kept(self):
        spec = VisualSpec.from_dict(VISUAL_SPEC, "Technology")
        assert spec.palette == VISUAL_SPEC["palette"]
        assert spec.composition == "radial"
        assert spec.elements == ["rocket", "globe", "code"]

    def test_invalid_fields_defaulted(self):
        spec = VisualSpec.from_dict(
            {"palette": ["red", "#12"], "composition": "spiral", "mood": " ", "elements": []},
            "Technology",
            hints=["code"],
        )
        assert spec.palette == ["#3B82F6", "#1E40AF", "#F8FAFC"]
        assert spec.composition == "diagonal"
        assert spec.mood == "modern"
        assert spec.elements == ["code", "abstract", "abstract"]

    def test_not_a_dict(self):
        spec = VisualSpec.from_dict(None, "Unknown")
        assert spec.palette[:2] == ["#6B7280", "#374151"]
        assert len(spec.elements) == 3


class TestRenderSvg:
    def test_deterministic(self):
        spec = VisualSpec.from_dict(VISUAL_SPEC, "Technology")
        assert render_svg(spec) == render_svg(spec)

    def test_well_formed_at_expected_size(self):
        root = ET.fromstring(render_svg(VisualSpec.from_dict(OTHER_VISUAL_SPEC, "Health")))
        assert root.get("width") == "1200"
        assert root.get("height") == "630"

    @pytest.mark.parametrize("composition", ["diagonal", "radial", "horizontal", "vertical", "grid"])
    def test_every_composition_renders(self, composition):
        spec = VisualSpec(palette=["#000000", "#FFFFFF"], composition=composition, elements=["mystery", "x", "y"])
        ET.fromstring(render_svg(spec))

    def test_placeholder_uses_category_colors(self):
        svg = render_placeholder("Technology")
        assert "#3B82F6" in svg and "#1E40AF" in svg
        assert "<text" not in svg


class TestSignatures:
    def test_same_render_same_signature(self):
        svg = render_svg(VisualSpec.from_dict(VISUAL_SPEC, "Technology"))
        assert content_signature(svg) == content_signature(minify_svg(svg))

    def test_index_persists(self, tmp_path):
        path = tmp_path / "sig.json"
        SignatureIndex(path).add("a", ["fill:#000"])
        assert dict(SignatureIndex(path).items()) == {"a": ["fill:#000"]}

    def test_parallel_writers_keep_each_others_entries(self, tmp_path):
        path = tmp_path / "sig.json"
        first, second = SignatureIndex(path), SignatureIndex(path)
        assert list(first.items()) == []

        second.add("post-b", ["fill:#111"])
        first.add("post-a", ["fill:#222"])

        assert dict(SignatureIndex(path).items()) == {"post-a": ["fill:#222"], "post-b": ["fill:#111"]}
        assert dict(first.items())["post-b"] == ["fill:#111"]

    def test_corrupt_index_starts_empty(self, tmp_path):
        path = tmp_path / "sig.json"
        path.write_text("{not json")
        assert list(SignatureIndex(path).items()) == []

    def test_minify(self):
        assert minify_svg("<svg>\n  <!-- note -->\n  <rect/>\n</svg>") == "<svg><rect/></svg>"


class TestThumbnailEngine:
    def test_first_thumbnail_accepted(self, engine, tmp_path):
        result = engine.generate("first", "Serverless", article_html(), "Technology")
        assert result.tier == "svg"
        assert result.attempts == 1
        assert (tmp_path / "first.svg").exists()
        assert "first" in json.loads((tmp_path / "signatures.json").read_text())

    def test_identical_design_falls_back_to_placeholder(self, engine, chat, tmp_path):
        engine.generate("first", "Serverless", article_html(), "Technology")
        before = chat.tasks().count("visual_spec")

        result = engine.generate("second", "Serverless again", article_html(), "Technology")

        assert chat.tasks().count("visual_spec") - before == 3
        assert result.tier == "placeholder"
        assert any("similar" in line for line in result.logs)
        assert (tmp_path / "second.svg").read_text() == render_placeholder("Technology")

    def test_distinct_design_accepted(self, make_hub, tmp_path):
        chat = ScriptedProvider()
        engine = ThumbnailEngine(make_hub([Provider("chat-1", chat)]), output_dir=tmp_path)
        engine.generate("first", "Serverless", article_html(), "Technology")

        chat.replies["visual_spec"] = json.dumps(OTHER_VISUAL_SPEC)
        result = engine.generate("second", "Healthy habits", article_html(), "Health")
        assert result.tier == "svg"
        assert result.attempts == 1
        assert result.similarity <= 80

    def test_retry_with_new_design(self, make_hub, tmp_path):
        chat = ScriptedProvider()
        engine = ThumbnailEngine(make_hub([Provider("chat-1", chat)]), output_dir=tmp_path)
        engine.generate("first", "Serverless", article_html(), "Technology")

        chat.replies["visual_spec"] = lambda payload: json.dumps(
            VISUAL_SPEC if payload["attempt"] == 1 else OTHER_VISUAL_SPEC
        )
        result = engine.generate("second", "Serverless", article_html(), "Technology")
        assert result.tier == "svg"
        assert result.attempts == 2
        assert "previous design was too similar" in chat.calls[-1]["prompt"]

    def test_retry_note_added_once(self, engine, chat):
        engine.generate("first", "Serverless", article_html(), "Technology")
        engine.generate("second", "Serverless again", article_html(), "Technology")

        prompts = [p["prompt"] for p in chat.calls if p.get("task") == "visual_spec"][-3:]
        assert "too similar" not in prompts[0]
        assert prompts[1] == prompts[2]
        assert prompts[2].count("too similar") == 1

    def test_image_tier_when_spec_unavailable(self, make_hub, tmp_path):
        chat = ScriptedProvider({"visual_spec": "I cannot draw"})
        hub = make_hub([Provider("chat-1", chat)], image=lambda payload, timeout: PNG)
        result = ThumbnailEngine(hub, output_dir=tmp_path).generate("img", "Serverless", article_html(), "Technology")
        assert result.tier == "image"
        assert result.path.endswith("img.png")
        assert (tmp_path / "img.png").read_bytes() == PNG

    def test_placeholder_when_every_tier_fails(self, make_hub, tmp_path):
        chat = ScriptedProvider({"visual_spec": "I cannot draw"})
        engine = ThumbnailEngine(make_hub([Provider("chat-1", chat)]), output_dir=tmp_path)
        result = engine.generate("plain", "Serverless", article_html(), "Sports")
        assert result.tier == "placeholder"
        assert result.path.endswith("plain.svg")

    def test_category_placeholders(self, engine, tmp_path):
        paths = engine.generate_category_placeholders(["Technology", "Health"])
        assert [p.rsplit("/", 1)[-1] for p in paths] == ["technology-default.svg", "health-default.svg"]
        assert (tmp_path / "technology-default.svg").read_text() == render_placeholder("Technology")

    def test_is_unique(self, engine, tmp_path):
        result = engine.generate("first", "Serverless", article_html(), "Technology")
        copy = tmp_path / "copy.svg"
        copy.write_text((tmp_path / "first.svg").read_text())

        assert engine.is_unique(result.path)
        assert not engine.is_unique(copy)
        assert engine.is_unique(tmp_path / "photo.png")

    def test_unreadable_svg_is_not_unique(self, engine, tmp_path):
        broken = tmp_path / "broken.svg"
        broken.write_text("<svg")
        assert not engine.is_unique(broken)
