"""Thumbnail generation with a uniqueness check.

Tier 1 asks the chat chain for a small visual spec (palette, composition,
mood, elements) and renders it as a 1200x630 SVG. Each render is reduced to
a content signature and compared with every stored signature; a render that
is too close to an existing one is retried with a fresh spec. Tier 2 is a
text-to-image provider. Tier 3 is a category-colored placeholder.

Nothing in here raises: a failed tier falls through to the next one.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import random
import re
import xml.etree.ElementTree as ET
from collections import Counter
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

from autoblog.config import (
    CATEGORIES,
    CATEGORY_COLORS,
    DEFAULT_CATEGORY_COLORS,
    SIGNATURE_INDEX_PATH,
    SIMILARITY_THRESHOLD,
    THUMBNAIL_DIR,
    THUMBNAIL_EXCERPT_CHARS,
    THUMBNAIL_MAX_ATTEMPTS,
    THUMBNAIL_MAX_BYTES,
)
from autoblog.pipeline.dedup import sequence_similarity
from autoblog.pipeline.prompts import build_image_prompt, build_visual_spec_prompt
from autoblog.providers.hub import ProviderHub
from autoblog.storage import flocked
from autoblog.text import plain_text, slugify

logger = logging.getLogger(__name__)

WIDTH, HEIGHT = 1200, 630
COMPOSITIONS = ("diagonal", "radial", "horizontal", "vertical", "grid")
_HEX = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_SVG_NS = "{http://www.w3.org/2000/svg}"
RETRY_NOTE = (
    "\n\nYour previous design was too similar to an existing thumbnail. "
    "Use a clearly different palette, composition and elements."
)


# ── Topic triggers ────────────────────────────────────────────────────────

TOPIC_TRIGGERS = [
    ("phone", re.compile(r"\b(phones?|smartphones?|mobile|iphone|android|apps?)\b", re.I)),
    ("clock", re.compile(r"\b(time|deadlines?|schedul\w*|clocks?|hours?)\b", re.I)),
    ("scales", re.compile(r"\b(law|legal|justice|courts?|polic(y|ies)|regulat\w*|elections?)\b", re.I)),
    ("chart", re.compile(r"\b(markets?|stocks?|growth|econom\w*|data|analytics|revenue|trends?)\b", re.I)),
    ("brain", re.compile(r"\b(ai|artificial intelligence|machine learning|neural|llms?|mind|mental)\b", re.I)),
    ("shield", re.compile(r"\b(security|cyber\w*|privacy|protect\w*|defen[cs]e)\b", re.I)),
    ("globe", re.compile(r"\b(global|world|international|climate|earth)\b", re.I)),
    ("rocket", re.compile(r"\b(space|launch\w*|startups?|rockets?|nasa|mars)\b", re.I)),
    ("code", re.compile(r"\b(code|coding|programming|developers?|software|webassembly|serverless)\b", re.I)),
    ("leaf", re.compile(r"\b(environment\w*|green|sustainab\w*|nature|plants?|conservation)\b", re.I)),
    ("heart", re.compile(r"\b(health\w*|hearts?|wellness|medical|medicine|fitness)\b", re.I)),
    ("ball", re.compile(r"\b(sports?|football|soccer|basketball|marathon|athletes?)\b", re.I)),
    ("gamepad", re.compile(r"\b(games?|gaming|esports|consoles?|rpgs?)\b", re.I)),
    ("money", re.compile(r"\b(money|financ\w*|funding|invest\w*|banks?|crypto\w*)\b", re.I)),
    ("lightbulb", re.compile(r"\b(ideas?|innovation|invent\w*|creativ\w*)\b", re.I)),
    ("chip", re.compile(r"\b(chips?|semiconductors?|hardware|quantum|computing|cloud|edge)\b", re.I)),
]


def topic_elements(text: str, limit: int = 5) -> list[str]:
    """Motif names whose trigger words appear in the text, most frequent first."""
    counts = Counter()
    for name, pattern in TOPIC_TRIGGERS:
        hits = len(pattern.findall(text))
        if hits:
            counts[name] = hits
    return [name for name, _ in counts.most_common(limit)]


# ── Visual spec ───────────────────────────────────────────────────────────


def category_palette(category: str) -> list[str]:
    primary, secondary = CATEGORY_COLORS.get(category.lower(), DEFAULT_CATEGORY_COLORS)
    return [primary, secondary, "#F8FAFC"]


@dataclass
class VisualSpec:
    palette: list[str]
    composition: str = "diagonal"
    mood: str = "modern"
    elements: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[dict], category: str, hints: list[str] = ()) -> "VisualSpec":
        """Validate a model-provided spec field by field, filling gaps with defaults."""
        data = data if isinstance(data, dict) else {}

        palette = data.get("palette")
        colors = [c.strip() for c in palette if isinstance(c, str) and _HEX.match(c.strip())] if isinstance(palette, list) else []
        if len(colors) < 2:
            colors = category_palette(category)

        composition = str(data.get("composition", "")).strip().lower()
        if composition not in COMPOSITIONS:
            composition = "diagonal"

        mood = data.get("mood")
        mood = mood.strip() if isinstance(mood, str) and mood.strip() else "modern"

        raw = data.get("elements")
        elements = [e.strip().lower() for e in raw if isinstance(e, str) and e.strip()] if isinstance(raw, list) else []
        for extra in list(hints) + ["abstract"]:
            if len(elements) >= 3:
                break
            if extra not in elements:
                elements.append(extra)
        while len(elements) < 3:
            elements.append("abstract")

        return cls(palette=colors[:5], composition=composition, mood=mood, elements=elements[:5])

    def seed(self) -> int:
        digest = hashlib.md5(json.dumps(asdict(self), sort_keys=True).encode()).hexdigest()
        return int(digest[:12], 16)


# ── Shape library ─────────────────────────────────────────────────────────
# Each motif draws around (x, y) with size s. Colors: c = main, a = accent.


def _phone(x, y, s, c, a):
    return (
        f'<rect x="{x - s * 0.45:.0f}" y="{y - s * 0.8:.0f}" width="{s * 0.9:.0f}" height="{s * 1.6:.0f}" rx="{s * 0.12:.0f}" fill="{c}"/>'
        f'<rect x="{x - s * 0.35:.0f}" y="{y - s * 0.62:.0f}" width="{s * 0.7:.0f}" height="{s * 1.1:.0f}" fill="{a}" opacity="0.85"/>'
    )


def _clock(x, y, s, c, a):
    return (
        f'<circle cx="{x:.0f}" cy="{y:.0f}" r="{s * 0.8:.0f}" fill="{c}"/>'
        f'<line x1="{x:.0f}" y1="{y:.0f}" x2="{x:.0f}" y2="{y - s * 0.55:.0f}" stroke="{a}" stroke-width="{s * 0.08:.0f}"/>'
        f'<line x1="{x:.0f}" y1="{y:.0f}" x2="{x + s * 0.4:.0f}" y2="{y:.0f}" stroke="{a}" stroke-width="{s * 0.08:.0f}"/>'
    )


def _scales(x, y, s, c, a):
    return (
        f'<line x1="{x:.0f}" y1="{y - s * 0.8:.0f}" x2="{x:.0f}" y2="{y + s * 0.8:.0f}" stroke="{c}" stroke-width="{s * 0.1:.0f}"/>'
        f'<line x1="{x - s:.0f}" y1="{y - s * 0.5:.0f}" x2="{x + s:.0f}" y2="{y - s * 0.5:.0f}" stroke="{c}" stroke-width="{s * 0.08:.0f}"/>'
        f'<polygon points="{x - s:.0f},{y - s * 0.5:.0f} {x - s * 1.3:.0f},{y + s * 0.1:.0f} {x - s * 0.7:.0f},{y + s * 0.1:.0f}" fill="{a}"/>'
        f'<polygon points="{x + s:.0f},{y - s * 0.5:.0f} {x + s * 0.7:.0f},{y + s * 0.1:.0f} {x + s * 1.3:.0f},{y + s * 0.1:.0f}" fill="{a}"/>'
    )


def _chart(x, y, s, c, a):
    bars = []
    for i, h in enumerate((0.5, 0.9, 0.7, 1.3)):
        bars.append(
            f'<rect x="{x - s + i * s * 0.5:.0f}" y="{y + s * 0.7 - s * h:.0f}" width="{s * 0.38:.0f}" height="{s * h:.0f}" fill="{c if i % 2 else a}"/>'
        )
    return "".join(bars)


def _brain(x, y, s, c, a):
    lobes = [(-0.35, -0.2), (0.35, -0.2), (-0.4, 0.25), (0.4, 0.25), (0, -0.45)]
    return "".join(
        f'<ellipse cx="{x + dx * s:.0f}" cy="{y + dy * s:.0f}" rx="{s * 0.45:.0f}" ry="{s * 0.35:.0f}" fill="{c if i % 2 else a}" opacity="0.9"/>'
        for i, (dx, dy) in enumerate(lobes)
    )


def _shield(x, y, s, c, a):
    return (
        f'<path d="M {x:.0f} {y - s:.0f} L {x + s * 0.8:.0f} {y - s * 0.6:.0f} L {x + s * 0.65:.0f} {y + s * 0.4:.0f} '
        f'Q {x:.0f} {y + s:.0f} {x - s * 0.65:.0f} {y + s * 0.4:.0f} L {x - s * 0.8:.0f} {y - s * 0.6:.0f} Z" fill="{c}"/>'
        f'<path d="M {x - s * 0.3:.0f} {y:.0f} L {x - s * 0.05:.0f} {y + s * 0.25:.0f} L {x + s * 0.35:.0f} {y - s * 0.25:.0f}" stroke="{a}" stroke-width="{s * 0.1:.0f}" fill="none"/>'
    )


def _globe(x, y, s, c, a):
    return (
        f'<circle cx="{x:.0f}" cy="{y:.0f}" r="{s * 0.85:.0f}" fill="{c}"/>'
        f'<ellipse cx="{x:.0f}" cy="{y:.0f}" rx="{s * 0.35:.0f}" ry="{s * 0.85:.0f}" stroke="{a}" stroke-width="{s * 0.05:.0f}" fill="none"/>'
        f'<line x1="{x - s * 0.85:.0f}" y1="{y:.0f}" x2="{x + s * 0.85:.0f}" y2="{y:.0f}" stroke="{a}" stroke-width="{s * 0.05:.0f}"/>'
    )


def _rocket(x, y, s, c, a):
    return (
        f'<path d="M {x:.0f} {y - s:.0f} Q {x + s * 0.45:.0f} {y - s * 0.3:.0f} {x + s * 0.3:.0f} {y + s * 0.5:.0f} '
        f'L {x - s * 0.3:.0f} {y + s * 0.5:.0f} Q {x - s * 0.45:.0f} {y - s * 0.3:.0f} {x:.0f} {y - s:.0f} Z" fill="{c}"/>'
        f'<polygon points="{x - s * 0.3:.0f},{y + s * 0.5:.0f} {x:.0f},{y + s:.0f} {x + s * 0.3:.0f},{y + s * 0.5:.0f}" fill="{a}"/>'
        f'<circle cx="{x:.0f}" cy="{y - s * 0.25:.0f}" r="{s * 0.15:.0f}" fill="{a}"/>'
    )


def _code(x, y, s, c, a):
    w = s * 0.08
    return (
        f'<polyline points="{x - s * 0.3:.0f},{y - s * 0.5:.0f} {x - s:.0f},{y:.0f} {x - s * 0.3:.0f},{y + s * 0.5:.0f}" stroke="{c}" stroke-width="{w:.0f}" fill="none"/>'
        f'<polyline points="{x + s * 0.3:.0f},{y - s * 0.5:.0f} {x + s:.0f},{y:.0f} {x + s * 0.3:.0f},{y + s * 0.5:.0f}" stroke="{c}" stroke-width="{w:.0f}" fill="none"/>'
        f'<line x1="{x + s * 0.15:.0f}" y1="{y - s * 0.6:.0f}" x2="{x - s * 0.15:.0f}" y2="{y + s * 0.6:.0f}" stroke="{a}" stroke-width="{w:.0f}"/>'
    )


def _leaf(x, y, s, c, a):
    return (
        f'<path d="M {x - s * 0.7:.0f} {y + s * 0.7:.0f} Q {x - s * 0.7:.0f} {y - s * 0.7:.0f} {x + s * 0.7:.0f} {y - s * 0.7:.0f} '
        f'Q {x + s * 0.7:.0f} {y + s * 0.7:.0f} {x - s * 0.7:.0f} {y + s * 0.7:.0f} Z" fill="{c}"/>'
        f'<line x1="{x - s * 0.7:.0f}" y1="{y + s * 0.7:.0f}" x2="{x + s * 0.4:.0f}" y2="{y - s * 0.4:.0f}" stroke="{a}" stroke-width="{s * 0.05:.0f}"/>'
    )


def _heart(x, y, s, c, a):
    return (
        f'<path d="M {x:.0f} {y + s * 0.8:.0f} C {x - s * 1.2:.0f} {y:.0f} {x - s * 0.6:.0f} {y - s:.0f} {x:.0f} {y - s * 0.35:.0f} '
        f'C {x + s * 0.6:.0f} {y - s:.0f} {x + s * 1.2:.0f} {y:.0f} {x:.0f} {y + s * 0.8:.0f} Z" fill="{c}"/>'
        f'<polyline points="{x - s * 0.6:.0f},{y:.0f} {x - s * 0.2:.0f},{y:.0f} {x:.0f},{y - s * 0.3:.0f} {x + s * 0.2:.0f},{y + s * 0.2:.0f} {x + s * 0.6:.0f},{y:.0f}" stroke="{a}" stroke-width="{s * 0.06:.0f}" fill="none"/>'
    )


def _ball(x, y, s, c, a):
    return (
        f'<circle cx="{x:.0f}" cy="{y:.0f}" r="{s * 0.8:.0f}" fill="{c}"/>'
        f'<path d="M {x - s * 0.8:.0f} {y:.0f} Q {x:.0f} {y - s * 0.5:.0f} {x + s * 0.8:.0f} {y:.0f}" stroke="{a}" stroke-width="{s * 0.06:.0f}" fill="none"/>'
        f'<path d="M {x:.0f} {y - s * 0.8:.0f} Q {x + s * 0.5:.0f} {y:.0f} {x:.0f} {y + s * 0.8:.0f}" stroke="{a}" stroke-width="{s * 0.06:.0f}" fill="none"/>'
    )


def _gamepad(x, y, s, c, a):
    return (
        f'<rect x="{x - s:.0f}" y="{y - s * 0.45:.0f}" width="{s * 2:.0f}" height="{s * 0.9:.0f}" rx="{s * 0.4:.0f}" fill="{c}"/>'
        f'<rect x="{x - s * 0.7:.0f}" y="{y - s * 0.08:.0f}" width="{s * 0.4:.0f}" height="{s * 0.16:.0f}" fill="{a}"/>'
        f'<rect x="{x - s * 0.58:.0f}" y="{y - s * 0.2:.0f}" width="{s * 0.16:.0f}" height="{s * 0.4:.0f}" fill="{a}"/>'
        f'<circle cx="{x + s * 0.45:.0f}" cy="{y - s * 0.1:.0f}" r="{s * 0.1:.0f}" fill="{a}"/>'
        f'<circle cx="{x + s * 0.65:.0f}" cy="{y + s * 0.1:.0f}" r="{s * 0.1:.0f}" fill="{a}"/>'
    )


def _money(x, y, s, c, a):
    return (
        f'<circle cx="{x - s * 0.3:.0f}" cy="{y + s * 0.2:.0f}" r="{s * 0.6:.0f}" fill="{a}"/>'
        f'<circle cx="{x + s * 0.2:.0f}" cy="{y - s * 0.2:.0f}" r="{s * 0.6:.0f}" fill="{c}"/>'
        f'<circle cx="{x + s * 0.2:.0f}" cy="{y - s * 0.2:.0f}" r="{s * 0.4:.0f}" stroke="{a}" stroke-width="{s * 0.06:.0f}" fill="none"/>'
    )


def _lightbulb(x, y, s, c, a):
    return (
        f'<circle cx="{x:.0f}" cy="{y - s * 0.2:.0f}" r="{s * 0.6:.0f}" fill="{c}"/>'
        f'<rect x="{x - s * 0.25:.0f}" y="{y + s * 0.35:.0f}" width="{s * 0.5:.0f}" height="{s * 0.45:.0f}" rx="{s * 0.08:.0f}" fill="{a}"/>'
    )


def _chip(x, y, s, c, a):
    pins = "".join(
        f'<line x1="{x - s * 0.9:.0f}" y1="{y + d * s:.0f}" x2="{x + s * 0.9:.0f}" y2="{y + d * s:.0f}" stroke="{a}" stroke-width="{s * 0.06:.0f}"/>'
        for d in (-0.4, 0, 0.4)
    )
    return pins + f'<rect x="{x - s * 0.6:.0f}" y="{y - s * 0.6:.0f}" width="{s * 1.2:.0f}" height="{s * 1.2:.0f}" rx="{s * 0.1:.0f}" fill="{c}"/>'


SHAPE_LIBRARY = {
    "phone": _phone,
    "clock": _clock,
    "scales": _scales,
    "chart": _chart,
    "brain": _brain,
    "shield": _shield,
    "globe": _globe,
    "rocket": _rocket,
    "code": _code,
    "leaf": _leaf,
    "heart": _heart,
    "ball": _ball,
    "gamepad": _gamepad,
    "money": _money,
    "lightbulb": _lightbulb,
    "chip": _chip,
}


def _abstract(composition: str, x, y, s, c, a, rng: random.Random) -> str:
    """Fallback shape for elements the library has no motif for."""
    if composition == "radial":
        return (
            f'<circle cx="{x:.0f}" cy="{y:.0f}" r="{s * 0.8:.0f}" stroke="{c}" stroke-width="{s * 0.1:.0f}" fill="none"/>'
            f'<circle cx="{x:.0f}" cy="{y:.0f}" r="{s * 0.4:.0f}" fill="{a}"/>'
        )
    if composition == "horizontal":
        return f'<ellipse cx="{x:.0f}" cy="{y:.0f}" rx="{s * 1.2:.0f}" ry="{s * 0.35:.0f}" fill="{c}"/>'
    if composition == "vertical":
        return f'<rect x="{x - s * 0.25:.0f}" y="{y - s:.0f}" width="{s * 0.5:.0f}" height="{s * 2:.0f}" rx="{s * 0.2:.0f}" fill="{c}"/>'
    if composition == "grid":
        return f'<rect x="{x - s * 0.5:.0f}" y="{y - s * 0.5:.0f}" width="{s:.0f}" height="{s:.0f}" fill="{c}" transform="rotate({rng.randint(0, 45)} {x:.0f} {y:.0f})"/>'
    return f'<polygon points="{x - s:.0f},{y + s * 0.6:.0f} {x:.0f},{y - s * 0.8:.0f} {x + s:.0f},{y + s * 0.6:.0f}" fill="{c}"/>'


def match_shape(element: str) -> Optional[str]:
    element = element.lower()
    for name in SHAPE_LIBRARY:
        if name in element:
            return name
    for name, pattern in TOPIC_TRIGGERS:
        if pattern.search(element):
            return name
    return None


# ── Rendering ─────────────────────────────────────────────────────────────

_GRADIENTS = {
    "diagonal": 'x1="0%" y1="0%" x2="100%" y2="100%"',
    "horizontal": 'x1="0%" y1="0%" x2="100%" y2="0%"',
    "vertical": 'x1="0%" y1="0%" x2="0%" y2="100%"',
    "grid": 'x1="100%" y1="0%" x2="0%" y2="100%"',
}


def _layout(composition: str, n: int, rng: random.Random) -> list[tuple[float, float]]:
    if composition == "radial":
        offset = rng.uniform(0, 2 * math.pi)
        return [
            (600 + 210 * math.cos(offset + 2 * math.pi * i / n), 315 + 170 * math.sin(offset + 2 * math.pi * i / n))
            for i in range(n)
        ]
    if composition == "horizontal":
        return [(180 + i * (840 / max(n - 1, 1)), 315 + rng.uniform(-60, 60)) for i in range(n)]
    if composition == "vertical":
        return [(600 + rng.uniform(-260, 260), 110 + i * (410 / max(n - 1, 1))) for i in range(n)]
    if composition == "grid":
        cells = [(300 + col * 300, 200 + row * 230) for row in range(2) for col in range(3)]
        rng.shuffle(cells)
        return cells[:n]
    return [(220 + i * (760 / max(n - 1, 1)), 470 - i * (310 / max(n - 1, 1))) for i in range(n)]


def render_svg(spec: VisualSpec) -> str:
    """Render a spec to SVG. The same spec always renders the same image."""
    rng = random.Random(spec.seed())
    palette = spec.palette
    first, last = palette[0], palette[-1]

    if spec.composition == "radial":
        gradient = (
            f'<radialGradient id="bg" cx="50%" cy="50%" r="75%">'
            f'<stop offset="0%" stop-color="{first}"/><stop offset="100%" stop-color="{last}"/></radialGradient>'
        )
    else:
        gradient = (
            f'<linearGradient id="bg" {_GRADIENTS[spec.composition]}>'
            f'<stop offset="0%" stop-color="{first}"/><stop offset="100%" stop-color="{last}"/></linearGradient>'
        )

    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{WIDTH}" height="{HEIGHT}" viewBox="0 0 {WIDTH} {HEIGHT}">',
        f"<defs>{gradient}</defs>",
        f'<rect width="{WIDTH}" height="{HEIGHT}" fill="url(#bg)"/>',
    ]

    for _ in range(rng.randint(3, 6)):
        parts.append(
            f'<circle cx="{rng.randint(0, WIDTH)}" cy="{rng.randint(0, HEIGHT)}" r="{rng.randint(40, 220)}" '
            f'fill="{rng.choice(palette)}" opacity="{rng.uniform(0.08, 0.25):.2f}"/>'
        )

    points = _layout(spec.composition, len(spec.elements), rng)
    for i, (element, (x, y)) in enumerate(zip(spec.elements, points)):
        size = rng.uniform(55, 95)
        main = palette[(i + 1) % len(palette)]
        accent = palette[(i + 2) % len(palette)]
        shape = match_shape(element)
        if shape:
            parts.append(SHAPE_LIBRARY[shape](x, y, size, main, accent))
        else:
            parts.append(_abstract(spec.composition, x, y, size, main, accent, rng))

    parts.append("</svg>")
    return "\n".join(parts)


def render_placeholder(category: str) -> str:
    """Deterministic category-colored placeholder (no text)."""
    primary, secondary = CATEGORY_COLORS.get(category.lower(), DEFAULT_CATEGORY_COLORS)
    return "\n".join([
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{WIDTH}" height="{HEIGHT}" viewBox="0 0 {WIDTH} {HEIGHT}">',
        '<defs><linearGradient id="fallbackGrad" x1="0%" y1="0%" x2="100%" y2="100%">'
        f'<stop offset="0%" stop-color="{primary}"/><stop offset="100%" stop-color="{secondary}"/>'
        "</linearGradient></defs>",
        f'<rect width="{WIDTH}" height="{HEIGHT}" fill="url(#fallbackGrad)"/>',
        '<circle cx="200" cy="150" r="120" fill="white" opacity="0.1"/>',
        '<circle cx="1000" cy="480" r="150" fill="white" opacity="0.15"/>',
        '<circle cx="600" cy="315" r="150" fill="white" opacity="0.2"/>',
        "</svg>",
    ])


def minify_svg(svg: str) -> str:
    svg = re.sub(r"<!--.*?-->", "", svg, flags=re.S)
    return re.sub(r">\s+<", "><", svg).strip()


# ── Signatures ────────────────────────────────────────────────────────────


def _style_value(style: str, key: str) -> Optional[str]:
    match = re.search(rf"(?:^|;)\s*{key}\s*:\s*([^;]+)", style or "")
    return match.group(1).strip() if match else None


def content_signature(svg: str) -> list[str]:
    """Token list describing an SVG: colors, shape histogram, positioned nodes."""
    root = ET.fromstring(svg)
    fills, strokes = [], []
    shapes = Counter()
    positioned = 0
    for el in root.iter():
        tag = el.tag.replace(_SVG_NS, "")
        shapes[tag] += 1
        fill = el.get("fill") or el.get("stop-color") or _style_value(el.get("style"), "fill")
        if fill and fill.lower() != "none" and not fill.startswith("url("):
            fills.append(fill.lower())
        stroke = el.get("stroke") or _style_value(el.get("style"), "stroke")
        if stroke and stroke.lower() != "none":
            strokes.append(stroke.lower())
        if any(el.get(attr) is not None for attr in ("x", "y", "cx", "cy", "x1", "points", "d", "transform")):
            positioned += 1

    return (
        [f"fill:{c}" for c in sorted(fills)]
        + [f"stroke:{c}" for c in sorted(strokes)]
        + [f"shape:{t}:{n}" for t, n in sorted(shapes.items())]
        + [f"positioned:{positioned}"]
    )


class SignatureIndex:
    """Signatures of every SVG thumbnail created so far, kept in a JSON file.

    The file is re-read on every lookup and merged under a file lock on every
    write, so parallel workers see each other's thumbnails.
    """

    def __init__(self, path: Path = SIGNATURE_INDEX_PATH):
        self.path = Path(path)
        self.lock_path = self.path.with_suffix(".lock")

    def _read(self) -> dict[str, list[str]]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            logger.warning("Signature index unreadable (%s), starting empty", e)
            return {}

    def items(self):
        return self._read().items()

    def add(self, name: str, signature: list[str]) -> None:
        with flocked(self.lock_path):
            entries = self._read()
            entries[name] = signature
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps(entries))
            tmp.replace(self.path)

    def most_similar(self, signature: list[str], exclude: str = "") -> tuple[float, Optional[str]]:
        best, best_name = 0.0, None
        for name, other in self.items():
            if name == exclude:
                continue
            score = sequence_similarity(signature, other)
            if score > best:
                best, best_name = score, name
        return best, best_name


# ── Engine ────────────────────────────────────────────────────────────────


@dataclass
class ThumbnailResult:
    path: Optional[str]
    tier: str  # svg | image | placeholder | none
    attempts: int = 0
    similarity: float = 0.0
    logs: list[str] = field(default_factory=list)


def _image_extension(data: bytes) -> str:
    if data.startswith(b"\x89PNG"):
        return "png"
    if data.startswith(b"\xff\xd8"):
        return "jpg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return "png"


class ThumbnailEngine:
    def __init__(
        self,
        hub: ProviderHub,
        index: Optional[SignatureIndex] = None,
        output_dir: Path = THUMBNAIL_DIR,
        max_attempts: int = THUMBNAIL_MAX_ATTEMPTS,
        threshold: float = SIMILARITY_THRESHOLD,
    ):
        self.hub = hub
        self.output_dir = Path(output_dir)
        self.index = index or SignatureIndex(self.output_dir / "signatures.json")
        self.max_attempts = max_attempts
        self.threshold = threshold

    def _write(self, filename: str, data) -> str:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / filename
        if isinstance(data, bytes):
            path.write_bytes(data)
        else:
            if len(data.encode()) > THUMBNAIL_MAX_BYTES:
                logger.warning("Thumbnail %s exceeds %d bytes, minifying", filename, THUMBNAIL_MAX_BYTES)
                data = minify_svg(data)
            path.write_text(data)
        return str(path)

    def generate(self, slug: str, title: str, content: str, category: str) -> ThumbnailResult:
        """Create a thumbnail for one article. Falls through tiers; never raises."""
        logs: list[str] = []
        try:
            result = self._svg_tier(slug, title, content, category, logs)
            if result is None:
                result = self._image_tier(slug, title, category, content, logs)
            if result is None:
                result = self._placeholder_tier(slug, category, logs)
        except Exception as e:
            logger.exception("Thumbnail generation failed for %s", slug)
            logs.append(f"Thumbnail generation failed: {e}")
            try:
                result = self._placeholder_tier(slug, category, logs)
            except OSError as write_error:
                logs.append(f"Placeholder could not be written: {write_error}")
                result = ThumbnailResult(None, "none")
        result.logs = logs
        for line in logs:
            logger.info(line)
        return result

    def _svg_tier(self, slug, title, content, category, logs) -> Optional[ThumbnailResult]:
        excerpt = plain_text(content)[:THUMBNAIL_EXCERPT_CHARS]
        hints = topic_elements(f"{title} {excerpt}")
        base_prompt = build_visual_spec_prompt(title, category, excerpt, hints)

        for attempt in range(1, self.max_attempts + 1):
            prompt = base_prompt if attempt == 1 else base_prompt + RETRY_NOTE
            reply = self.hub.complete_json(
                "visual_spec", "You are a visual designer. Reply with JSON only.", prompt, attempt=attempt
            )
            if not reply.ok:
                logs.append(f"Visual spec unavailable ({reply.outcome})")
                return None

            spec = VisualSpec.from_dict(reply.data, category, hints)
            svg = render_svg(spec)
            signature = content_signature(svg)
            score, match = self.index.most_similar(signature, exclude=slug)
            if score > self.threshold:
                logs.append(f"Attempt {attempt}: {score:.0f}% similar to '{match}', retrying")
                continue

            path = self._write(f"{slug}.svg", svg)
            self.index.add(slug, signature)
            logs.append(f"SVG thumbnail accepted on attempt {attempt} ({score:.0f}% max similarity)")
            return ThumbnailResult(path, "svg", attempt, score)

        logs.append(f"No unique SVG after {self.max_attempts} attempts")
        return None

    def _image_tier(self, slug, title, category, content, logs) -> Optional[ThumbnailResult]:
        elements = topic_elements(f"{title} {plain_text(content)[:THUMBNAIL_EXCERPT_CHARS]}")
        reply = self.hub.text_to_image(build_image_prompt(title, category, elements))
        if not reply.ok:
            logs.append(f"Text-to-image unavailable ({reply.outcome})")
            return None
        path = self._write(f"{slug}.{_image_extension(reply.data)}", reply.data)
        logs.append(f"Image thumbnail via {reply.provider}")
        return ThumbnailResult(path, "image")

    def _placeholder_tier(self, slug, category, logs) -> ThumbnailResult:
        path = self._write(f"{slug}.svg", render_placeholder(category))
        logs.append(f"Using {category} placeholder thumbnail")
        return ThumbnailResult(path, "placeholder")

    def generate_category_placeholders(self, categories: list[str] = CATEGORIES) -> list[str]:
        """Write ``<category>-default.svg`` for every category."""
        paths = []
        for category in categories:
            paths.append(self._write(f"{slugify(category)}-default.svg", render_placeholder(category)))
            logger.info("Generated placeholder for category: %s", category)
        return paths

    def is_unique(self, path) -> bool:
        """Re-check a stored SVG against every other signature in the index."""
        path = Path(path)
        if path.suffix.lower() != ".svg":
            return True
        try:
            signature = content_signature(path.read_text())
        except (OSError, ET.ParseError) as e:
            logger.warning("Cannot read thumbnail %s: %s", path, e)
            return False
        score, match = self.index.most_similar(signature, exclude=path.stem)
        if score > self.threshold:
            logger.info("%s is %.0f%% similar to %s", path.name, score, match)
            return False
        return True
