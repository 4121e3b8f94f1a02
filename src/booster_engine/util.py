import os
import re
from functools import lru_cache
from typing import List

DEFAULT_REPLACEMENT = "REDACTED"
_DEFAULT_PATTERNS = (
    (r"(?i)\bBearer\s+[A-Za-z0-9\-._~+/]+=*\b", "Bearer REDACTED"),
    (
        r"(?i)\b([A-Z0-9_]*(?:api[_-]?key|token|secret|password))\b\s*[:=]\s*([^\s,;]+)",
        r"\1=REDACTED",
    ),
    # Account names reported by `dumpsys account` and similar probes.
    (r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}", "EMAIL_REDACTED"),
)
_EXTRA_PATTERNS_ENV = "REDACTION_EXTRA_PATTERNS"


def redact(text: str) -> str:
    value = text or ""
    for regex, replacement in _compiled_patterns():
        value = regex.sub(replacement, value)
    return value


@lru_cache(maxsize=2)
def _compiled_patterns() -> List[tuple[re.Pattern[str], str]]:
    items: List[tuple[re.Pattern[str], str]] = [
        (re.compile(pattern), replacement) for pattern, replacement in _DEFAULT_PATTERNS
    ]
    extra_raw = (os.environ.get(_EXTRA_PATTERNS_ENV) or "").strip()
    if not extra_raw:
        return items
    for token in extra_raw.split(";;"):
        pattern = token.strip()
        if not pattern:
            continue
        try:
            items.append((re.compile(pattern), DEFAULT_REPLACEMENT))
        except re.error:
            continue
    return items


def truncate(text: str, max_len: int, suffix: str = "...") -> str:
    value = text or ""
    if max_len <= 0 or len(value) <= max_len:
        return value
    return value[:max_len] + suffix
