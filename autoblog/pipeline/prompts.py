"""Build the system and user prompts for every language-model call."""

from datetime import datetime

from autoblog.config import MAX_WORDS, MIN_WORDS, SITE_NAME

CURRENT_YEAR = datetime.now().year


# ── Draft ─────────────────────────────────────────────────────────────────


def build_system_prompt() -> str:
    """Return the system-level instructions for the draft call."""
    return f"""You are an expert blog writer for {SITE_NAME}, a publication covering technology, business, science, health, sports, games and politics.

You write long-form articles ({MIN_WORDS}-{MAX_WORDS} words, ideally 1200-1800) that are:
- Accurate, current and grounded in the research provided
- Written for curious general readers, not specialists
- Structured for both continuous reading and header-based skimming

## STRUCTURAL RULES (STRICT)

1. The first line is the article title as a single <h1>. The body itself contains NO other <h1>.
2. Start the body with a paragraph (3-5 sentences) that delivers value immediately. No "Introduction" header.
3. Use 4-7 <h2> sections. Add <h3> subsections where they genuinely help.
4. Headers never repeat each other. Each header is specific to its section.
5. NO "Conclusion" header. End with a single closing paragraph.
6. Keep paragraphs short: 2-4 sentences each.

## LINK RULES

1. Include at least 2 EXTERNAL links to authoritative sources (official sites, documentation, research, reputable news).
2. Include at least 1 link to a related topic on {SITE_NAME} using a relative URL (/blog/...) only if one is given to you. Never invent internal URLs.
3. Format links as standard HTML anchors: <a href="URL">anchor text</a>

## STYLE RULES

- NEVER use em dashes (—). Use commas, colons or separate sentences instead.
- Avoid robotic phrasing: no "In conclusion", "To sum up", "In today's fast-paced world", "Ultimately".
- Do not bold whole sentences. Bold at most a handful of key terms.
- Do not mention that you are an AI or that the text was generated.

Output format: clean HTML using <h1>, <h2>, <h3>, <p>, <ul>, <ol>, <li>, <strong>, <em>, <a>. No markdown, no code fences, no <html>/<body> wrapper."""


def build_draft_prompt(topic: str, category: str, research: str, keywords: list[str] = ()) -> str:
    """Build the user prompt for the first draft.

    Args:
        topic: Selected topic or custom prompt text.
        category: Article category, e.g. "Technology".
        research: Research brief from the research step.
        keywords: Optional SEO keywords to work in.
    """
    sections = [
        _build_intro(topic, category),
        _build_research_section(research),
        _build_keyword_section(keywords),
        _build_requirements(),
    ]
    return "\n".join(s for s in sections if s) + "\n\nWrite the article now."


def _build_intro(topic: str, category: str) -> str:
    return f"""Write a comprehensive {category} article about: {topic}

The article should explain what is happening, why it matters to readers in {CURRENT_YEAR}, and what to watch for next."""


def _build_research_section(research: str) -> str:
    if not research:
        return ""
    return f"""
## RESEARCH
Use the findings below as your factual base. Prefer these facts over assumptions, and link to the listed sources where they fit:

{research}
"""


def _build_keyword_section(keywords: list[str]) -> str:
    if not keywords:
        return ""
    kw_lines = [f'  {i+1}. "{k}"' for i, k in enumerate(keywords)]
    return f"""
## KEYWORDS
Work 3-5 of these phrases into natural sentences, spread across different sections:
{chr(10).join(kw_lines)}
"""


def _build_requirements() -> str:
    return f"""
## ADDITIONAL REQUIREMENTS
- Length between {MIN_WORDS} and {MAX_WORDS} words
- At least 4 <h2> sections
- At least 2 external links
- No em dashes anywhere in the text
- Only the title may be an <h1>"""


# ── Expand / optimize ─────────────────────────────────────────────────────


def build_expand_prompt(html: str, topic: str, word_count: int) -> str:
    return f"""The article below about "{topic}" is only {word_count} words long. Expand it to at least {MIN_WORDS + 300} words.

- Keep every existing section and link
- Add depth: examples, context, data points, practical implications
- Add new <h2> or <h3> sections where they help
- Keep the same HTML format and the same style rules (no em dashes, no "In conclusion")

Return ONLY the full expanded article HTML.

{html}"""


def build_optimize_system_prompt() -> str:
    return """You are a senior editor. You rewrite blog articles to read like they were written by an experienced human journalist while keeping every fact, heading and link intact.

Rules:
- Remove em dashes and robotic phrasing
- Vary sentence length; prefer active voice
- Keep all <a> elements with their href values unchanged
- Keep the heading hierarchy (<h2>, <h3>) and the overall order of sections
- Never add an <h1>
- Return ONLY well-formed HTML, no commentary, no code fences"""


def build_optimize_prompt(html: str) -> str:
    return f"""Please rewrite the following blog content to be more human-like and SEO optimized, and remove usage of em dashes or robotic phrasing. Format it with proper HTML headings and paragraphs:

{html}"""


# ── Keywords ──────────────────────────────────────────────────────────────


def build_keywords_prompt(topic: str, category: str) -> str:
    return f"""List 5 short SEO keywords or tags (1-3 words each) for a {category} blog article about "{topic}".

Return ONLY a JSON object: {{"keywords": ["...", "..."]}}"""


# ── Link discovery ────────────────────────────────────────────────────────


def build_link_score_prompt(topic: str, category: str, url: str, title: str, snippet: str) -> str:
    return f"""You decide whether an external page is a good outbound link for a blog article.

Article topic: {topic}
Article category: {category}

Candidate page:
  URL: {url}
  Title: {title}
  Snippet: {snippet}

Score the candidate's relevance and trustworthiness for readers of this article from 0 to 100, and suggest a natural 2-5 word anchor text for it.

Return ONLY a JSON object: {{"score": <0-100>, "anchor": "<anchor text>"}}"""


# ── Thumbnails ────────────────────────────────────────────────────────────


def build_visual_spec_prompt(title: str, category: str, excerpt: str, hints: list[str]) -> str:
    hint_line = ", ".join(hints) if hints else "none"
    return f"""Analyze this blog post and design an abstract header illustration for it.

Title: {title}
Category: {category}
Suggested motifs: {hint_line}
Excerpt: {excerpt}

Provide ONLY a JSON object with these fields:
{{
  "palette": ["#hex", "#hex", "#hex"],
  "composition": "diagonal | radial | horizontal | vertical | grid",
  "mood": "one or two words, e.g. 'optimistic', 'calm technical'",
  "elements": ["3 to 5 simple objects or shapes, e.g. 'rocket', 'chart', 'globe'"]
}}

The palette has 2-5 colors. STRICTLY NO TEXT OR LETTERS in the design."""


def build_image_prompt(title: str, category: str, elements: list[str]) -> str:
    motif = ", ".join(elements) if elements else category.lower()
    return (
        f"Professional abstract blog header illustration about {title}. "
        f"{category} theme, featuring {motif}. "
        "Clean vector style, soft lighting, centered composition, high quality, "
        "no text, no letters, no watermark."
    )
