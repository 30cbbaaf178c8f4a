from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .constants import MASK, SENSITIVE_HEADERS, SENSITIVE_INPUT_KEYS

_REDACT_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r'("access_token"\s*:\s*")[^"]+(")', re.IGNORECASE), rf"\g<1>{MASK}\g<2>"),
    (re.compile(r'("refresh_token"\s*:\s*")[^"]+(")', re.IGNORECASE), rf"\g<1>{MASK}\g<2>"),
    (re.compile(r'("password"\s*:\s*")[^"]+(")', re.IGNORECASE), rf"\g<1>{MASK}\g<2>"),
    (re.compile(r'("client_secret"\s*:\s*")[^"]+(")', re.IGNORECASE), rf"\g<1>{MASK}\g<2>"),
    (re.compile(r'("authorization"\s*:\s*")[^"]+(")', re.IGNORECASE), rf"\g<1>{MASK}\g<2>"),
    (re.compile(r"(authorization\s*:\s*(?:bearer|basic)\s+)[^\s]+", re.IGNORECASE), rf"\g<1>{MASK}"),
    (re.compile(r"((?:^|[?&])password=)[^&\s]+", re.IGNORECASE), rf"\g<1>{MASK}"),
]


def redact_text(text: Optional[str], max_len: Optional[int] = 2000) -> str:
    if not text:
        return ""
    out = text
    for pat, repl in _REDACT_PATTERNS:
        out = pat.sub(repl, out)
    return out if max_len is None else out[:max_len]


def mask_headers(headers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Copy headers with credential-bearing values replaced by the mask.

    Keys are lower-cased so snapshots compare the same regardless of how the
    caller spelled them.
    """
    out: Dict[str, Any] = {}
    for k, v in (headers or {}).items():
        key = str(k).lower()
        out[key] = MASK if key in SENSITIVE_HEADERS else v
    return out


def _is_sensitive_key(key: Any) -> bool:
    return str(key).lower().replace("-", "_") in SENSITIVE_INPUT_KEYS


def mask_input(value: Any) -> Any:
    """
    Recursively copy dicts/lists, masking values stored under secret-like keys.
    Strings are run through the text redactor; other scalars pass through.
    """
    if isinstance(value, Mapping):
        return {k: (MASK if _is_sensitive_key(k) else mask_input(v)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [mask_input(v) for v in value]
    if isinstance(value, str):
        return redact_text(value, max_len=None)
    return value
