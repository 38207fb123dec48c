"""
payproof/core/extraction.py

Field extraction for witnessed context blobs.

The context a witness signs is attacker-influenced text. It is NOT parsed
with a JSON library: the accepted grammar is a flat object whose values are
all strings, scanned once, left to right, with no backtracking.

Contracts:
    extract_all_values(data, max_values)          → List[str], raises MalformedInputError
    find_substring_end_index(data, target)        → int, NOT_FOUND when absent
    extract_field_from_context(data, marker)      → str, "" when marker absent
    extract_all_from_context(context, max_values,
                             include_linkage_hashes,
                             profile)             → List[str], raises MalformedInputError

Escapes:
    Inside a key or value a backslash consumes itself and the next character.
    Values are returned as they appear in the input, so an escaped quote is
    returned as the two characters  \\"  and never terminates the value.

Cost:
    Every function here is O(len(data)) time. The only allocations are the
    returned value slices.
"""

from enum import Enum
from typing import List, Tuple

from payproof.core.exceptions import MalformedInputError


NOT_FOUND = 2 ** 256 - 1


class ContextProfile(Enum):
    """
    Accepted layouts of a witnessed context blob.

    ADDRESS_MESSAGE:
        {"contextAddress":"..","contextMessage":"..","extractedParameters":{..},"providerHash":".."}
    PARAMETERS_FIRST:
        {"extractedParameters":{..},"intentHash":"..","providerHash":".."}

    The profile is chosen by the payment method, never detected.
    """
    ADDRESS_MESSAGE = "address_message"
    PARAMETERS_FIRST = "parameters_first"


def _fail(message: str, kind: str, **details) -> None:
    raise MalformedInputError(f"Extraction failed: {message}", {"kind": kind, **details})


def _find_closing_quote(data: str, pos: int) -> int:
    """Index of the next unescaped quote at or after pos, or -1."""
    n = len(data)
    i = pos
    while i < n:
        c = data[i]
        if c == "\\":
            i += 2
            continue
        if c == '"':
            return i
        i += 1
    return -1


def _scan_flat_object(data: str, pos: int, max_values: int) -> Tuple[List[str], int]:
    """
    Scan one flat object starting at data[pos] == '{'.

    Returns the values in input order and the index just past the closing
    brace. max_values may be 0 here: the caller has already spent part of
    its budget on surrounding fields.
    """
    n = len(data)
    if pos >= n or data[pos] != "{":
        _fail("expected '{'", "missing_open_brace", position=pos)

    values: List[str] = []
    i = pos + 1
    if i < n and data[i] == "}":
        return values, i + 1

    while True:
        # ── key ──────────────────────────────────────────────
        if i >= n or data[i] != '"':
            _fail("expected '\"' to open a key", "missing_key_quote", position=i)
        if len(values) >= max_values:
            _fail("exceeded max values", "exceeded_max_values", max_values=max_values)
        close = _find_closing_quote(data, i + 1)
        if close < 0:
            _fail("unterminated key", "unterminated", position=i)

        # ── separator ────────────────────────────────────────
        i = close + 1
        if not data.startswith(':"', i):
            _fail("expected ':\"' after key", "missing_colon_quote", position=i)

        # ── value ────────────────────────────────────────────
        start = i + 2
        close = _find_closing_quote(data, start)
        if close < 0:
            _fail("unterminated value", "unterminated", position=start)
        values.append(data[start:close])

        i = close + 1
        if i < n and data[i] == "}":
            return values, i + 1
        if i >= n or data[i] != ",":
            _fail("expected ',' or '}' after value", "missing_comma_or_end", position=i)
        i += 1


def extract_all_values(data: str, max_values: int) -> List[str]:
    """
    Return the string values of a flat object, in input order.

    Nothing may follow the closing brace. Raises MalformedInputError on any
    grammar violation, on more than max_values values, and when
    max_values < 1 (checked before the input is looked at).
    """
    if max_values < 1:
        _fail("max values must be greater than 0", "invalid_max_values")
    if not data:
        _fail("empty input", "empty_input")

    values, end = _scan_flat_object(data, 0, max_values)
    if end != len(data):
        _fail("unexpected data after closing brace", "trailing_data", position=end)
    return values


def find_substring_end_index(data: str, target: str) -> int:
    """
    Index just past the leftmost occurrence of target in data.

    Case-sensitive. Returns NOT_FOUND when target does not occur, including
    when data is shorter than target.
    """
    if len(target) > len(data):
        return NOT_FOUND
    index = data.find(target)
    if index < 0:
        return NOT_FOUND
    return index + len(target)


def extract_field_from_context(data: str, marker: str) -> str:
    """
    Value that follows marker, up to the next unescaped quote.

    marker normally ends with the opening quote, e.g. '"date":"'.
    A missing marker is not an error and yields "". A value that is never
    closed is.
    """
    start = find_substring_end_index(data, marker)
    if start == NOT_FOUND:
        return ""
    close = _find_closing_quote(data, start)
    if close < 0:
        _fail("unterminated value", "unterminated", marker=marker)
    return data[start:close]


# ── Context profiles ─────────────────────────────────────────

def _expect(context: str, pos: int, literal: str, field: str) -> int:
    if not context.startswith(literal, pos):
        _fail(f"malformed {field}", "malformed_field", field=field)
    return pos + len(literal)


def _read_field(context: str, pos: int, field: str) -> Tuple[str, int]:
    close = _find_closing_quote(context, pos)
    if close < 0:
        _fail(f"malformed {field}", "malformed_field", field=field)
    if close == pos:
        _fail(f"empty {field} value", "empty_field", field=field)
    return context[pos:close], close + 1


def _expect_end(context: str, pos: int, field: str) -> None:
    if context[pos:] != "}":
        _fail(f"unexpected data after {field}", "trailing_data", field=field)


def extract_all_from_context(
    context: str,
    max_values: int,
    include_linkage_hashes: bool,
    profile: ContextProfile = ContextProfile.PARAMETERS_FIRST,
) -> List[str]:
    """
    Extract every value of a witnessed context blob, in layout order.

    ADDRESS_MESSAGE returns
        [contextAddress, contextMessage, *parameters, providerHash?]
    PARAMETERS_FIRST returns
        [*parameters, intentHash?, providerHash?]

    The trailing hashes are required, and returned, only when
    include_linkage_hashes is set; otherwise whatever follows the
    parameters object is ignored. max_values bounds the length of the
    returned list.
    """
    if max_values < 1:
        _fail("max values must be greater than 0", "invalid_max_values")
    if not context:
        _fail("empty input", "empty_input")

    leading: List[str] = []
    if profile is ContextProfile.ADDRESS_MESSAGE:
        pos = _expect(context, 0, '{"contextAddress":"', "contextAddress")
        address, pos = _read_field(context, pos, "contextAddress")
        pos = _expect(context, pos, ',"contextMessage":"', "contextMessage")
        message, pos = _read_field(context, pos, "contextMessage")
        pos = _expect(context, pos, ',"extractedParameters":{', "extractedParameters")
        leading = [address, message]
        trailing_fields = ["providerHash"]
    else:
        pos = _expect(context, 0, '{"extractedParameters":{', "extractedParameters")
        trailing_fields = ["intentHash", "providerHash"]

    if not include_linkage_hashes:
        trailing_fields = []

    budget = max_values - len(leading) - len(trailing_fields)
    if budget < 0:
        _fail("exceeded max values", "exceeded_max_values", max_values=max_values)

    # pos sits just past the '{' the profile prefix consumed
    parameters, pos = _scan_flat_object(context, pos - 1, budget)

    trailing: List[str] = []
    for field in trailing_fields:
        pos = _expect(context, pos, f',"{field}":"', field)
        value, pos = _read_field(context, pos, field)
        trailing.append(value)
    if trailing_fields:
        _expect_end(context, pos, trailing_fields[-1])

    return leading + parameters + trailing
