"""Central configuration for the article generation pipeline."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


def _env_list(name: str) -> list[str]:
    """Read a comma-separated env var as a list (one entry per API key / model)."""
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


# ── Paths ──────────────────────────────────────────────────────────────────
ROOT_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.getenv("AUTOBLOG_DATA_DIR", ROOT_DIR / "data"))
ARTICLE_STORE_PATH = DATA_DIR / "articles.json"
SCHEDULER_STATE_PATH = DATA_DIR / "scheduler_state.json"
THUMBNAIL_DIR = Path(os.getenv("AUTOBLOG_THUMBNAIL_DIR", ROOT_DIR / "output" / "thumbnails"))
SIGNATURE_INDEX_PATH = THUMBNAIL_DIR / "signatures.json"

# ── Site ───────────────────────────────────────────────────────────────────
SITE_URL = os.getenv("SITE_URL", "https://example.com")
SITE_NAME = os.getenv("SITE_NAME", "AutoBlog")
ARTICLE_PATH_PREFIX = "/blog/"

# ── API Keys ───────────────────────────────────────────────────────────────
# Each key becomes its own provider, so one exhausted account does not take
# the whole backend down.
ANTHROPIC_API_KEYS = _env_list("ANTHROPIC_API_KEY")
GEMINI_API_KEYS = _env_list("GEMINI_API_KEY")
OPENROUTER_API_KEYS = _env_list("OPEN_ROUTER_KEY")
HUGGINGFACE_API_KEYS = _env_list("HUGGINGFACE_API_KEY")
SERPER_API_KEY = os.getenv("SERPER_API_KEY", "")

# ── Model settings ─────────────────────────────────────────────────────────
CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-5-20250929")
CLAUDE_MAX_TOKENS = 8000  # ~5000 words
CLAUDE_TEMPERATURE = 0.7
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
OPENROUTER_MODELS = _env_list("OPENROUTER_MODELS") or [
    "deepseek/deepseek-chat:free",
    "mistralai/mistral-7b-instruct:free",
    "nousresearch/hermes-3-llama-3.1-8b:free",
]
HF_IMAGE_MODEL = os.getenv("HF_IMAGE_MODEL", "stabilityai/stable-diffusion-xl-base-1.0")

# ── Provider fallback ──────────────────────────────────────────────────────
PROVIDER_MAX_RETRIES = 3
PROVIDER_BACKOFF_BASE = 2.0  # seconds; 1, 2, 4
PROVIDER_BACKOFF_MAX = 8.0
PROVIDER_TIMEOUT = 60  # seconds per completion call
PROVIDER_COOLDOWN_SECONDS = 3600

# ── Topic selection ────────────────────────────────────────────────────────
MAX_TOPIC_ATTEMPTS = 10
SIMILARITY_THRESHOLD = _env_float("SIMILARITY_THRESHOLD", 80.0)  # percent
RSS_MAX_AGE_SECONDS = 7 * 24 * 3600
RSS_TOPICS_PER_RUN = 5
RSS_SOURCES_PER_RUN = 2

# ── Article generation settings ────────────────────────────────────────────
MIN_WORDS = 500
MAX_WORDS = 5000
PARAGRAPH_SPLIT_WORDS = 80
PARAGRAPH_CHUNK_WORDS = 40
OPTIMIZE_INPUT_CHARS = 12000

# ── Link management ────────────────────────────────────────────────────────
MAX_INTERNAL_LINKS = 4
MAX_EXTERNAL_LINKS = 3
MAX_TOTAL_LINKS = 7
MAX_VALID_EXTERNAL_LINKS = 4
MAX_DISCOVERED_LINKS = 2
DISCOVERY_CANDIDATES = 5
LINK_SCORE_THRESHOLD = _env_float("LINK_SCORE_THRESHOLD", 75.0)
LINK_CHECK_TIMEOUT = 5
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

# ── Thumbnails ─────────────────────────────────────────────────────────────
THUMBNAIL_MAX_ATTEMPTS = 3
THUMBNAIL_EXCERPT_CHARS = 2000
THUMBNAIL_MAX_BYTES = 200 * 1024

# ── Jobs & scheduling ──────────────────────────────────────────────────────
JOB_MAX_ATTEMPTS = 3
JOB_RETRY_DELAY = 60  # seconds; multiplied by attempt number
JOB_STATE_TTL = 600
JOB_LOOKUP_FAILURE_TTL = 300
DAILY_ARTICLE_LIMIT = 5
DAILY_RUN_SPACING_MINUTES = 210
DAILY_RUN_JITTER_MINUTES = 120
SCHEDULER_LOCK_SECONDS = 300
STALE_LOCK_SECONDS = 3600
SCHEDULER_LOCK_PATH = DATA_DIR / "scheduler.lock"
DAILY_RUN_INTERVAL_SECONDS = 24 * 3600
STALLED_ALERT_SECONDS = 25 * 3600

# ── Notifications ──────────────────────────────────────────────────────────
REPORTS_EMAIL = os.getenv("REPORTS_EMAIL", "")
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")

# ── Categories ─────────────────────────────────────────────────────────────
CATEGORIES = ["Technology", "Business", "AI", "Games", "Politics", "Science", "Health", "Sports"]

CATEGORY_COLORS = {
    "technology": ("#3B82F6", "#1E40AF"),
    "business": ("#10B981", "#047857"),
    "ai": ("#8B5CF6", "#6D28D9"),
    "games": ("#EF4444", "#B91C1C"),
    "politics": ("#F59E0B", "#D97706"),
    "science": ("#06B6D4", "#0E7490"),
    "health": ("#22C55E", "#15803D"),
    "sports": ("#EC4899", "#BE185D"),
}
DEFAULT_CATEGORY_COLORS = ("#6B7280", "#374151")

# ── Topic sources ──────────────────────────────────────────────────────────
RSS_SOURCES = {
    "technology": [
        "https://www.theverge.com/rss/index.xml",
        "https://www.wired.com/feed/rss",
        "https://feeds.bbci.co.uk/news/technology/rss.xml",
    ],
    "business": [
        "https://feeds.bbci.co.uk/news/business/rss.xml",
        "https://www.cnbc.com/id/10001147/device/rss/rss.html",
    ],
    "ai": [
        "https://www.wired.com/feed/tag/ai/latest/rss",
        "https://www.sciencedaily.com/rss/computers_math/artificial_intelligence.xml",
        "https://feeds.arstechnica.com/arstechnica/technology-lab",
    ],
    "politics": [
        "https://rss.politico.com/congress.xml",
        "https://feeds.bbci.co.uk/news/politics/rss.xml",
    ],
    "science": [
        "https://www.sciencedaily.com/rss/top/science.xml",
        "https://feeds.bbci.co.uk/news/science_and_environment/rss.xml",
    ],
    "health": [
        "https://feeds.bbci.co.uk/news/health/rss.xml",
        "https://www.sciencedaily.com/rss/top/health.xml",
    ],
}

FALLBACK_TOPICS = {
    "technology": [
        "Future of AI in the Workplace",
        "Best Programming Languages for Developers",
        "WebAssembly Complete Guide",
        "Quantum Computing Breakthroughs",
        "Cybersecurity Best Practices",
        "Cloud Computing Architecture Trends",
        "Edge Computing and IoT Integration",
        "Serverless Architecture Explained",
    ],
    "business": [
        "Remote Work Trends and Strategies",
        "Startup Funding Guide",
        "Leadership Skills for Modern Managers",
        "Digital Transformation in Business",
        "Sustainable Business Practices",
    ],
    "ai": [
        "Generative AI Explained",
        "LLM Fine-tuning Techniques",
        "Ethical AI Development",
        "AI in Healthcare Applications",
        "Machine Learning Best Practices",
    ],
    "games": [
        "Top RPGs of the Year",
        "Indie Game Development Guide",
        "Esports Industry Growth",
        "Game Design Principles",
        "Virtual Reality Gaming Trends",
    ],
    "politics": [
        "Global Climate Policies",
        "Digital Privacy Laws",
        "International Relations Updates",
        "Democratic Governance Trends",
        "Policy Making in the Digital Age",
    ],
    "science": [
        "Latest Space Exploration Discoveries",
        "Climate Change Research Updates",
        "Breakthrough Medical Research",
        "Physics and Quantum Mechanics",
        "Environmental Conservation Efforts",
    ],
    "health": [
        "Mental Health Awareness",
        "Nutrition and Wellness Tips",
        "Exercise and Fitness Trends",
        "Medical Technology Advances",
        "Preventive Healthcare Strategies",
    ],
    "sports": [
        "Training for Marathon Success",
        "Nutrition for Athletes",
        "Sports Psychology Techniques",
        "Injury Prevention Strategies",
        "Professional Sports Analysis",
    ],
}
GENERIC_FALLBACK_TOPICS = [
    "Current Industry Trends",
    "Expert Analysis and Insights",
    "Future Predictions and Forecasts",
]

# Tags used when keyword generation is unavailable
FALLBACK_KEYWORDS = ["Trending", "Guide", "Analysis", "Insights"]
