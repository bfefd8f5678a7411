"""ID prefixes, patterns, and generation.

Record IDs are ``{prefix}{12 hex chars}``; manifest IDs carry 32 hex chars
so they cannot be guessed across identities.

INVARIANT: IDs are permanent. Once generated, an ID never changes.
"""

from __future__ import annotations

import re
import secrets

RECORD_PREFIXES: dict[str, str] = {
    "memories": "mem_",
    "knowledge": "kno_",
    "conversations": "cnv_",
    "projects": "prj_",
}

MANIFEST_PREFIX = "rt_"

ID_PATTERNS: dict[str, re.Pattern[str]] = {
    **{
        domain: re.compile(rf"^{re.escape(prefix)}[0-9a-f]{{12}}$")
        for domain, prefix in RECORD_PREFIXES.items()
    },
    "manifest": re.compile(r"^rt_[0-9a-f]{32}$"),
}


def generate_record_id(domain: str) -> str:
    """New random ID for a record in *domain*."""
    return f"{RECORD_PREFIXES[domain]}{secrets.token_hex(6)}"


def generate_manifest_id() -> str:
    return f"{MANIFEST_PREFIX}{secrets.token_hex(16)}"


def validate_id(value: str, kind: str) -> bool:
    """Check whether *value* matches the pattern for *kind*."""
    pattern = ID_PATTERNS.get(kind)
    if pattern is None:
        return False
    return pattern.match(value) is not None
