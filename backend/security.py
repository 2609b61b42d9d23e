import json
import re

MAX_PROMPT_CHARS = 50000
TRUNCATION_MARKER = "... [truncated]"

_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")
_INJECTION_PATTERNS = [
    re.compile(r"ignore\s+(all\s+)?previous\s+instructions?", re.IGNORECASE),
    re.compile(r"ignore\s+all\s+previous", re.IGNORECASE),
    re.compile(r"disregard\s+(all\s+)?previous(\s+instructions?)?", re.IGNORECASE),
    re.compile(r"forget\s+(all\s+)?previous(\s+instructions?)?", re.IGNORECASE),
    re.compile(r"\b(system|assistant)\s*:", re.IGNORECASE),
    re.compile(r"\[/?INST\]", re.IGNORECASE),
    re.compile(r"<</?SYS>>", re.IGNORECASE),
    re.compile(r"<\|(im_start|im_end|endoftext)\|>", re.IGNORECASE),
]
_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)


def sanitize_prompt(text: str, max_length: int = MAX_PROMPT_CHARS) -> str:
    """Neutralise untrusted text before it is embedded in a prompt."""
    if not text:
        return ""
    sanitized = _EXCESS_NEWLINES_RE.sub("\n\n", str(text))
    # Removal can expose a new match ("ignore ignore previous instructions previous instructions").
    changed = True
    while changed:
        before = sanitized
        for pattern in _INJECTION_PATTERNS:
            sanitized = pattern.sub("", sanitized)
        changed = sanitized != before
    sanitized = _EXCESS_NEWLINES_RE.sub("\n\n", sanitized).strip()
    if len(sanitized) > max_length:
        sanitized = sanitized[: max_length - len(TRUNCATION_MARKER)].rstrip() + TRUNCATION_MARKER
    return sanitized


def _loads(candidate: str):
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    if isinstance(value, (dict, list)):
        return value
    return None


def safe_json_parse(text: str):
    """Parse JSON out of an LLM reply. Returns a dict/list or None."""
    if not text or not isinstance(text, str):
        return None
    stripped = text.strip()

    fenced = _FENCE_RE.search(stripped)
    if fenced:
        parsed = _loads(fenced.group(1).strip())
        if parsed is not None:
            return parsed

    parsed = _loads(stripped)
    if parsed is not None:
        return parsed

    for pattern in (_OBJECT_RE, _ARRAY_RE):
        match = pattern.search(stripped)
        if match:
            parsed = _loads(match.group())
            if parsed is not None:
                return parsed
    return None
