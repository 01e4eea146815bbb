from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_SECRET_KEY_RE = re.compile(r"(TOKEN|KEY|SECRET)", re.IGNORECASE)
_SECRET_VALUE_RE = re.compile(r"(?i)(token|key|secret)(\s*[=:]\s*)([^\s,;&]+)")
_BEARER_RE = re.compile(r"(?i)(bearer\s+)([^\s]+)")


def redact_string(s: str) -> str:
    redacted = _SECRET_VALUE_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}***", s)
    redacted = _BEARER_RE.sub(lambda m: f"{m.group(1)}***", redacted)
    return redacted


def redact_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [(key, "***" if _SECRET_KEY_RE.search(key) else value) for key, value in parse_qsl(parts.query, keep_blank_values=True)]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query, safe="*"), parts.fragment))
