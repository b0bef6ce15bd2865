"""Deterministic lexical scanning helpers for JavaScript sources."""

from __future__ import annotations

import re

LINE_COMMENT = "//"
BLOCK_COMMENT = ("/*", "*/")
QUOTES = ("'", '"', "`")
ESCAPE = "\\"

_IDENTIFIER_CHAR_RE = re.compile(r"[A-Za-z0-9_$]")
_REGEX_PRECEDING_CHARS = set("(,=:[!&|?{};+-*%<>~^")
_REGEX_PRECEDING_WORDS = {
    "await",
    "case",
    "delete",
    "do",
    "else",
    "in",
    "instanceof",
    "new",
    "of",
    "return",
    "throw",
    "typeof",
    "void",
    "yield",
}


def mask_comments_and_strings(text: str) -> str:
    """Mask comments, strings and regex literals while preserving line count and offsets."""
    block_start, block_end = BLOCK_COMMENT
    chars = list(text)
    length = len(text)
    index = 0
    state: tuple[str, str] | None = None

    while index < length:
        if state is None:
            if text.startswith(LINE_COMMENT, index):
                _blank(chars, index, len(LINE_COMMENT))
                state = ("line_comment", "\n")
                index += len(LINE_COMMENT)
                continue

            if text.startswith(block_start, index):
                _blank(chars, index, len(block_start))
                state = ("block_comment", block_end)
                index += len(block_start)
                continue

            if text[index] == "/" and _regex_allowed(chars, index):
                end = _regex_literal_end(text, index)
                if end is not None:
                    _blank(chars, index + 1, end - index - 1)
                    index = end + 1
                    continue

            if text[index] in QUOTES:
                state = ("string", text[index])
                chars[index] = " "
                index += 1
                continue

            index += 1
            continue

        mode, marker = state
        if mode == "line_comment":
            if text[index] == "\n":
                state = None
            else:
                chars[index] = " "
            index += 1
            continue

        if text.startswith(marker, index) and (
            mode == "block_comment" or not _is_escaped(text, index)
        ):
            _blank(chars, index, len(marker))
            state = None
            index += len(marker)
            continue
        if text[index] != "\n":
            chars[index] = " "
        index += 1

    return "".join(chars)


def brackets_balanced(masked_text: str, open_char: str = "{", close_char: str = "}") -> bool:
    """Return True when every closer has an opener and nothing is left open."""
    depth = 0
    for char in masked_text:
        if char == open_char:
            depth += 1
        elif char == close_char:
            if depth == 0:
                return False
            depth -= 1
    return depth == 0


def _blank(chars: list[str], start: int, count: int) -> None:
    for offset in range(start, start + count):
        chars[offset] = " "


def _is_escaped(text: str, index: int) -> bool:
    backslashes = 0
    cursor = index - 1
    while cursor >= 0 and text[cursor] == ESCAPE:
        backslashes += 1
        cursor -= 1
    return backslashes % 2 == 1


def _regex_allowed(chars: list[str], index: int) -> bool:
    """A slash starts a regex literal unless it follows an operand."""
    cursor = index - 1
    while cursor >= 0 and chars[cursor].isspace():
        cursor -= 1
    if cursor < 0:
        return True
    previous = chars[cursor]
    if previous in _REGEX_PRECEDING_CHARS:
        return True
    if not _IDENTIFIER_CHAR_RE.match(previous):
        return False
    end = cursor + 1
    while cursor >= 0 and _IDENTIFIER_CHAR_RE.match(chars[cursor]):
        cursor -= 1
    return "".join(chars[cursor + 1 : end]) in _REGEX_PRECEDING_WORDS


def _regex_literal_end(text: str, index: int) -> int | None:
    """Return the index of the closing slash, or None when this is not a regex."""
    cursor = index + 1
    in_class = False
    while cursor < len(text):
        char = text[cursor]
        if char == "\n":
            return None
        if char == ESCAPE:
            cursor += 2
            continue
        if in_class:
            if char == "]":
                in_class = False
        elif char == "[":
            in_class = True
        elif char == "/":
            return cursor
        cursor += 1
    return None
