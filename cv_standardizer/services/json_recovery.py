"""
Recovery of JSON values from near-JSON generator output.

Generators cut off by a token limit, or chatty ones that wrap their answer in
markdown, rarely return text that ``json.loads`` accepts on the first try.
``parse_with_recovery`` walks an ordered list of candidate texts and returns
the first one that parses:

1. the raw text
2. the text with its markdown code fence stripped
3. the first balanced ``{...}`` / ``[...]`` substring
4. a repaired version of (1)
5. a repaired version of (3), or of the text from the first bracket onwards

Bracket extraction and force-closing both run on ``BracketScanner`` so they
agree on what counts as being inside a string.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional

from cv_standardizer.utils.exceptions import JsonRecoveryError
from cv_standardizer.utils.logging_config import get_logger

logger = get_logger(__name__)

NORMAL = "normal"
IN_STRING = "in_string"
IN_STRING_ESCAPED = "in_string_escaped"

_OPENERS = {"{": "}", "[": "]"}
_CLOSERS = {"}": "{", "]": "["}

_FENCE_RE = re.compile(r"```[ \t]*[\w+-]*[ \t]*\r?\n?(.*?)(?:```|$)", re.DOTALL)
_DISALLOWED_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_QUOTE_TABLE = str.maketrans({
    "“": '"', "”": '"', "„": '"', "‟": '"', "″": '"',
    "‘": "'", "’": "'", "‚": "'", "‛": "'", "′": "'",
})
_STRING_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


@dataclass(frozen=True)
class RecoveryResult:
    value: Any
    recovered: bool


class BracketScanner:
    """Quote-aware bracket stack with three states: normal, in-string, in-string-escaped."""

    def __init__(self):
        self.state = NORMAL
        self.stack: List[str] = []

    @property
    def in_string(self) -> bool:
        return self.state != NORMAL

    @property
    def balanced(self) -> bool:
        return self.state == NORMAL and not self.stack

    def feed(self, ch: str) -> None:
        if self.state == IN_STRING_ESCAPED:
            self.state = IN_STRING
        elif self.state == IN_STRING:
            if ch == "\\":
                self.state = IN_STRING_ESCAPED
            elif ch == '"':
                self.state = NORMAL
        elif ch == '"':
            self.state = IN_STRING
        elif ch in _OPENERS:
            self.stack.append(ch)
        elif ch in _CLOSERS and self.stack and self.stack[-1] == _CLOSERS[ch]:
            self.stack.pop()

    def closers(self) -> str:
        return "".join(_OPENERS[opener] for opener in reversed(self.stack))


def _first_bracket(text: str) -> int:
    positions = [p for p in (text.find("{"), text.find("[")) if p >= 0]
    return min(positions) if positions else -1


def strip_code_fence(text: str) -> str:
    """Return the body of the first markdown code fence, or the trimmed text when there is none."""
    s = text.strip()
    if "```" not in s:
        return s
    match = _FENCE_RE.search(s)
    if not match:
        return s
    return match.group(1).strip()


def extract_balanced_json(text: str) -> Optional[str]:
    """Return the substring from the first ``{``/``[`` up to where its bracket stack empties."""
    start = _first_bracket(text)
    if start < 0:
        return None
    scanner = BracketScanner()
    for i in range(start, len(text)):
        scanner.feed(text[i])
        if scanner.balanced:
            return text[start:i + 1]
    return None


def escape_control_chars_in_strings(text: str) -> str:
    out = []
    scanner = BracketScanner()
    for ch in text:
        if scanner.in_string and ch in _STRING_CONTROL_ESCAPES:
            out.append(_STRING_CONTROL_ESCAPES[ch])
            scanner.state = IN_STRING
            continue
        out.append(ch)
        scanner.feed(ch)
    return "".join(out)


def force_close(text: str) -> str:
    """
    Terminate an open string and append the closers of every unclosed bracket.

    Output cut off inside an object key, or right after one, has no value to
    keep: it is cut back to the member before it.
    """
    scanner = BracketScanner()
    last_token = ""
    string_start = -1
    string_is_key = False
    for i, ch in enumerate(text):
        if not scanner.in_string and not ch.isspace():
            if ch == '"':
                string_start = i
                string_is_key = bool(scanner.stack) and scanner.stack[-1] == "{" and last_token in ("{", ",")
            last_token = ch
        scanner.feed(ch)

    # last_token stays '"' until something follows the string
    if string_is_key and (scanner.in_string or last_token == '"'):
        out = text[:string_start].rstrip()
        if out.endswith(","):
            out = out[:-1]
        return out + scanner.closers()

    out = text
    if scanner.state == IN_STRING_ESCAPED:
        # a dangling backslash would escape the closing quote
        out = out[:-1]
    if scanner.in_string:
        out += '"'
    elif scanner.stack and out.rstrip().endswith(":"):
        out = out.rstrip() + " null"
    return out + scanner.closers()


def remove_trailing_commas(text: str) -> str:
    out = []
    scanner = BracketScanner()
    n = len(text)
    i = 0
    while i < n:
        ch = text[i]
        if ch == "," and not scanner.in_string:
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] in _CLOSERS:
                i += 1
                continue
        out.append(ch)
        scanner.feed(ch)
        i += 1
    return "".join(out)


def repair_json_text(text: str) -> str:
    """Apply every textual repair, in order, to a near-JSON string."""
    s = strip_code_fence(text)
    s = s.translate(_QUOTE_TABLE)
    s = _DISALLOWED_CONTROL_RE.sub(" ", s)
    s = escape_control_chars_in_strings(s)
    s = force_close(s)
    s = remove_trailing_commas(s)
    return s.strip()


def _candidates(raw: str) -> Iterator[str]:
    yield raw
    yield strip_code_fence(raw)
    balanced = extract_balanced_json(raw)
    if balanced is not None:
        yield balanced
    yield repair_json_text(raw)
    if balanced is not None:
        yield repair_json_text(balanced)
    else:
        start = _first_bracket(raw)
        if start >= 0:
            yield repair_json_text(raw[start:])


def parse_with_recovery(text: str) -> RecoveryResult:
    """
    Parse generator output, tolerating fences, trailing commas, control
    characters and truncation.

    Returns:
        RecoveryResult whose ``recovered`` flag is set when the accepted text
        differs from the trimmed input.

    Raises:
        JsonRecoveryError carrying the first ``json.loads`` error when no
        candidate parses.
    """
    raw = "" if text is None else str(text)
    trimmed = raw.strip()
    if not trimmed:
        raise JsonRecoveryError("Cannot recover JSON from empty input")

    seen = set()
    first_error: Optional[Exception] = None
    for candidate in _candidates(raw):
        candidate = candidate.strip()
        if not candidate or candidate in seen:
            continue
        seen.add(candidate)
        try:
            value = json.loads(candidate)
        except (ValueError, RecursionError) as e:
            if first_error is None:
                first_error = e
            continue
        recovered = candidate != trimmed
        if recovered:
            logger.debug(f"Recovered JSON after {len(seen)} candidate(s)")
        return RecoveryResult(value=value, recovered=recovered)

    raise JsonRecoveryError(f"Could not recover JSON from generator output: {first_error}", first_error=first_error)
