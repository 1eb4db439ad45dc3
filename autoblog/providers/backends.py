"""Concrete provider backends.

Every backend is a ``call(payload, timeout)`` function wrapped in a
:class:`Provider`. Backends translate HTTP statuses and SDK exceptions into
:class:`ProviderError` so the invoker can classify them.

Payload shapes:
    chat   – {"task", "system", "prompt", "max_tokens"?, "temperature"?} -> str
    search – {"query", "num"?} -> list[{"title", "url", "snippet"}]
    scrape – {"url"} -> {"title", "content", "snippet"}
    image  – {"prompt"} -> bytes
"""

from __future__ import annotations

import re
from urllib.parse import parse_qs, unquote, urlparse

import anthropic
import requests
from bs4 import BeautifulSoup

from autoblog import config
from autoblog.providers.base import EmptyResponseError, Provider, ProviderError

SCRAPE_CONTENT_CHARS = 2000
SCRAPE_SNIPPET_CHARS = 1000


# ── HTTP helper ───────────────────────────────────────────────────────────


def request(method: str, url: str, timeout: float, **kwargs) -> requests.Response:
    """Send a request and raise ProviderError for network failures and HTTP >= 400."""
    headers = kwargs.pop("headers", {}) or {}
    headers.setdefault("User-Agent", config.BROWSER_USER_AGENT)
    try:
        resp = requests.request(method, url, timeout=timeout, headers=headers, **kwargs)
    except requests.Timeout as e:
        raise ProviderError(f"timeout: {e}") from e
    except requests.RequestException as e:
        raise ProviderError(f"connection error: {e}") from e
    if resp.status_code >= 400:
        raise ProviderError(f"HTTP {resp.status_code}: {resp.text[:200]}", status=resp.status_code)
    return resp


def json_body(resp: requests.Response):
    try:
        return resp.json()
    except ValueError as e:
        raise EmptyResponseError(f"invalid JSON: {e}") from e


# ── Chat completion ───────────────────────────────────────────────────────


def anthropic_chat(api_key: str, model: str = config.CLAUDE_MODEL):
    client = anthropic.Anthropic(api_key=api_key, max_retries=0)

    def call(payload: dict, timeout: float) -> str:
        try:
            message = client.messages.create(
                model=model,
                max_tokens=payload.get("max_tokens", config.CLAUDE_MAX_TOKENS),
                temperature=payload.get("temperature", config.CLAUDE_TEMPERATURE),
                system=payload.get("system", ""),
                messages=[{"role": "user", "content": payload["prompt"]}],
                timeout=timeout,
            )
        except anthropic.APIStatusError as e:
            raise ProviderError(str(e), status=e.status_code) from e
        except anthropic.APIConnectionError as e:
            # also covers APITimeoutError
            raise ProviderError(f"connection error: {e}") from e
        return "".join(block.text for block in message.content if block.type == "text")

    return call


def gemini_chat(api_key: str, model: str = config.GEMINI_MODEL):
    url = f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def call(payload: dict, timeout: float) -> str:
        body = {
            "contents": [{"role": "user", "parts": [{"text": payload["prompt"]}]}],
            "generationConfig": {
                "temperature": payload.get("temperature", config.CLAUDE_TEMPERATURE),
                "maxOutputTokens": payload.get("max_tokens", config.CLAUDE_MAX_TOKENS),
            },
        }
        if payload.get("system"):
            body["systemInstruction"] = {"parts": [{"text": payload["system"]}]}
        resp = request("POST", url, timeout, params={"key": api_key}, json=body)
        data = json_body(resp)
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise EmptyResponseError(f"unexpected Gemini response shape: {e}") from e

    return call


def openrouter_chat(api_key: str, model: str):
    url = "https://openrouter.ai/api/v1/chat/completions"

    def call(payload: dict, timeout: float) -> str:
        messages = []
        if payload.get("system"):
            messages.append({"role": "system", "content": payload["system"]})
        messages.append({"role": "user", "content": payload["prompt"]})
        resp = request(
            "POST",
            url,
            timeout,
            headers={"Authorization": f"Bearer {api_key}", "X-Title": config.SITE_NAME},
            json={
                "model": model,
                "messages": messages,
                "temperature": payload.get("temperature", config.CLAUDE_TEMPERATURE),
                "max_tokens": payload.get("max_tokens", config.CLAUDE_MAX_TOKENS),
            },
        )
        data = json_body(resp)
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise EmptyResponseError(f"unexpected OpenRouter response shape: {e}") from e

    return call


# ── Web search ────────────────────────────────────────────────────────────


def serper_search(api_key: str):
    def call(payload: dict, timeout: float) -> list[dict]:
        resp = request(
            "POST",
            "https://google.serper.dev/search",
            timeout,
            headers={"X-API-KEY": api_key, "Content-Type": "application/json"},
            json={"q": payload["query"], "num": payload.get("num", 10)},
        )
        data = json_body(resp)
        return [
            {"title": r.get("title", ""), "url": r["link"], "snippet": r.get("snippet", "")}
            for r in data.get("organic", [])
            if r.get("link")
        ]

    return call


def _duckduckgo_target(href: str) -> str:
    """DuckDuckGo wraps results in a redirect; the real URL is in ``uddg``."""
    query = parse_qs(urlparse(href).query)
    if "uddg" in query:
        return unquote(query["uddg"][0])
    return href


def duckduckgo_search():
    def call(payload: dict, timeout: float) -> list[dict]:
        resp = request(
            "GET", "https://html.duckduckgo.com/html/", timeout, params={"q": payload["query"]}
        )
        soup = BeautifulSoup(resp.text, "html.parser")
        results = []
        for node in soup.select(".result"):
            link = node.select_one(".result__a")
            if link is None or not link.get("href"):
                continue
            url = _duckduckgo_target(link["href"])
            if not url.startswith(("http://", "https://")):
                continue
            snippet = node.select_one(".result__snippet")
            results.append({
                "title": link.get_text(strip=True),
                "url": url,
                "snippet": snippet.get_text(" ", strip=True) if snippet else "",
            })
        return results[: payload.get("num", 10)]

    return call


# ── URL scrape ────────────────────────────────────────────────────────────

_CONTENT_SELECTORS = ["article p", "main p", ".post-content p", ".article-body p", "body p"]


def extract_page_text(html: str, min_paragraph_chars: int = 50, max_paragraphs: int = 25) -> dict:
    """Pull title and main paragraph text out of an HTML page."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "nav", "footer", "header", "aside"]):
        tag.decompose()
    title = soup.title.get_text(strip=True) if soup.title else ""

    paragraphs: list[str] = []
    for selector in _CONTENT_SELECTORS:
        for node in soup.select(selector):
            text = re.sub(r"\s+", " ", node.get_text(" ", strip=True))
            if len(text) >= min_paragraph_chars and text not in paragraphs:
                paragraphs.append(text)
        if paragraphs:
            break

    content = "\n\n".join(paragraphs[:max_paragraphs])
    return {"title": title, "content": content, "snippet": content[:500]}


def page_scrape():
    def call(payload: dict, timeout: float) -> dict:
        url = payload["url"]
        if urlparse(url).scheme not in ("http", "https"):
            raise ProviderError(f"unsupported URL: {url}", status=400)
        resp = request("GET", url, timeout)
        page = extract_page_text(resp.text)
        if not page["content"]:
            raise EmptyResponseError(f"no readable content at {url}")
        return {
            "title": page["title"],
            "content": page["content"][:SCRAPE_CONTENT_CHARS],
            "snippet": page["snippet"][:SCRAPE_SNIPPET_CHARS],
        }

    return call


# ── Text to image ─────────────────────────────────────────────────────────


def huggingface_image(api_key: str, model: str = config.HF_IMAGE_MODEL):
    url = f"https://router.huggingface.co/hf-inference/models/{model}"

    def call(payload: dict, timeout: float) -> bytes:
        resp = request(
            "POST",
            url,
            timeout,
            headers={"Authorization": f"Bearer {api_key}", "Accept": "image/png"},
            json={"inputs": payload["prompt"]},
        )
        if not resp.headers.get("content-type", "").startswith("image/"):
            raise EmptyResponseError("text-to-image returned a non-image body")
        return resp.content

    return call


# ── Provider chains from configuration ────────────────────────────────────


def chat_providers() -> list[Provider]:
    providers = [
        Provider(f"anthropic:key_{i}", anthropic_chat(key), model=config.CLAUDE_MODEL)
        for i, key in enumerate(config.ANTHROPIC_API_KEYS, 1)
    ]
    providers += [
        Provider(f"gemini:key_{i}", gemini_chat(key), model=config.GEMINI_MODEL)
        for i, key in enumerate(config.GEMINI_API_KEYS, 1)
    ]
    for i, key in enumerate(config.OPENROUTER_API_KEYS, 1):
        for model in config.OPENROUTER_MODELS:
            providers.append(Provider(f"openrouter:key_{i}:{model}", openrouter_chat(key, model), model=model))
    return providers


def search_providers() -> list[Provider]:
    providers = []
    if config.SERPER_API_KEY:
        providers.append(Provider("serper", serper_search(config.SERPER_API_KEY), kind="search"))
    providers.append(Provider("duckduckgo", duckduckgo_search(), kind="search"))
    return providers


def scrape_providers() -> list[Provider]:
    return [Provider("http-scrape", page_scrape(), kind="scrape")]


def image_providers() -> list[Provider]:
    return [
        Provider(f"huggingface:key_{i}", huggingface_image(key), model=config.HF_IMAGE_MODEL, kind="image")
        for i, key in enumerate(config.HUGGINGFACE_API_KEYS, 1)
    ]
