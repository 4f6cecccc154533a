import re
from urllib.parse import urlparse

_WHITESPACE_RUN = re.compile(r"\s+")
_BLANK_LINES = re.compile(r"\n\s*\n")


def normalize_leak_text(text: str) -> str:
    """Lowercase, trim and collapse whitespace so formatting noise doesn't count as a difference."""
    text = text.lower().strip()
    text = _WHITESPACE_RUN.sub(" ", text)
    return _BLANK_LINES.sub("\n", text)


def normalize_target_name(name: str) -> str:
    return name.lower().strip()


def normalize_provider(provider: str) -> str:
    return provider.strip().upper()


def is_http_url(url: str) -> bool:
    try:
        p = urlparse(url)
    except ValueError:
        return False
    return p.scheme.lower() in ("http", "https") and bool(p.netloc)
