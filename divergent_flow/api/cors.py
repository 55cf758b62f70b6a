from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional
from urllib.parse import urlsplit

from ..internal_core.config import AppConfig

_DEFAULT_PORTS = {"http": 80, "https": 443}
_LOCAL_DEV_ORIGIN_RE = r"https?://(localhost|127\.0\.0\.1)(:\d+)?"
_HOST_LABEL_RE = r"[a-z0-9]([a-z0-9-]*[a-z0-9])?"


def normalize_origin(raw: str) -> Optional[str]:
    """Reduce an origin-ish string to scheme://host[:port]; None when unusable."""
    try:
        parts = urlsplit(raw.strip())
        port = parts.port
    except ValueError:
        return None
    scheme = (parts.scheme or "").lower()
    host = (parts.hostname or "").lower()
    if scheme not in _DEFAULT_PORTS or not host:
        return None
    if port is None or port == _DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def parse_origins(raw_entries: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    origins: list[str] = []
    for entry in raw_entries:
        origin = normalize_origin(entry)
        if origin is None or origin in seen:
            continue
        seen.add(origin)
        origins.append(origin)
    return origins


def pattern_to_regex(pattern: str) -> Optional[str]:
    """`https://*.vercel.app` -> regex matching one or more subdomain labels."""
    match = re.fullmatch(r"(https?)://\*\.([a-z0-9.-]+)(:\d+)?/?", pattern.strip().lower())
    if match is None:
        return None
    scheme, suffix, port = match.group(1), match.group(2).strip("."), match.group(3) or ""
    if not suffix:
        return None
    return f"{scheme}://({_HOST_LABEL_RE}\\.)+{re.escape(suffix)}{re.escape(port)}"


@dataclass(frozen=True)
class CorsPolicy:
    allow_origins: list[str] = field(default_factory=list)
    allow_origin_regex: Optional[str] = None
    allow_credentials: bool = False

    def is_origin_allowed(self, origin: str) -> bool:
        if origin in self.allow_origins:
            return True
        if self.allow_origin_regex is None:
            return False
        return re.fullmatch(self.allow_origin_regex, origin) is not None


def build_cors_policy(config: AppConfig) -> CorsPolicy:
    origins = parse_origins(config.CORS_ALLOWED_ORIGINS)
    regexes = [
        regex
        for regex in (pattern_to_regex(p) for p in config.CORS_ALLOWED_ORIGIN_PATTERNS)
        if regex is not None
    ]

    if config.is_development:
        regexes.insert(0, _LOCAL_DEV_ORIGIN_RE)
        return CorsPolicy(
            allow_origins=origins,
            allow_origin_regex="|".join(f"(?:{r})" for r in regexes),
            allow_credentials=True,
        )

    # Staging/production: explicit allow-list only; nothing configured means nothing allowed.
    return CorsPolicy(
        allow_origins=origins,
        allow_origin_regex="|".join(f"(?:{r})" for r in regexes) if regexes else None,
        allow_credentials=False,
    )
