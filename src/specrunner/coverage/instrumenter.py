"""Line-preserving lexical coverage instrumentation for browser JavaScript."""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field

from specrunner.coverage.lexical import brackets_balanced, mask_comments_and_strings

COVERAGE_GLOBAL = "__coverage__"

_STATEMENT_START_RE = re.compile(r"[A-Za-z_$]")
_WORD_BEFORE_RE = re.compile(r"([A-Za-z_$][A-Za-z0-9_$]*)\s*$")
_CLASS_HEAD_RE = re.compile(
    r"(?:^|[^\w$.])class(?:\s+[A-Za-z_$][\w$]*)?(?:\s+extends\s+[^{};]+?)?\s*$"
)
_CASE_LABEL_RE = re.compile(r"^(case\b.*|default\s*):$")
_DIRECTIVE_LINE_RE = re.compile(
    r"""^\s*(?P<literal>'(?:[^'\\\n]|\\.)*'|"(?:[^"\\\n]|\\.)*")"""
    r"(?P<semi>\s*;)?\s*(?://.*|/\*.*?\*/\s*)?$"
)
_NO_STATEMENT_WORDS = {"case", "catch", "default", "else", "finally", "in", "instanceof", "of"}
_BRANCH_WORDS = {"if"}
_BLOCK_WORDS = {"for", "while", "with", "catch"}
_PLAIN_BLOCK_WORDS = {"try", "finally", "do", "static"}
_COUNTED_BODIES = {"block", "function", "branch", "switch"}
_PAIRS = {")": "(", "]": "[", "}": "{"}


class InstrumentationError(ValueError):
    """Raised when source cannot be instrumented safely."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Cannot instrument {path}: {reason}")
        self.path = path
        self.reason = reason


@dataclass(slots=True)
class _Frame:
    kind: str
    opener: str
    word: str | None = None


@dataclass(slots=True)
class CoverageMaps:
    """Statement, function and branch locations keyed by counter id."""

    statements: dict[str, dict[str, int]] = field(default_factory=dict)
    functions: dict[str, dict[str, int]] = field(default_factory=dict)
    branches: dict[str, dict[str, int]] = field(default_factory=dict)

    def add(self, bucket: dict[str, dict[str, int]], line: int, column: int) -> str:
        counter_id = str(len(bucket) + 1)
        bucket[counter_id] = {"line": line, "column": column}
        return counter_id


def coverage_variable(path: str) -> str:
    """Return the per-file counter variable name."""
    return "__cov_" + hashlib.sha256(path.encode("utf-8")).hexdigest()[:12]


class Instrumenter:
    """Insert coverage counters without moving any original line.

    Statement counters go in front of statements that begin a line inside a
    block body. Function and branch counters go right after the opening brace
    of a function, ``if``/``else`` body or ``case`` label that ends its line.
    The per-file record is registered on ``window.__coverage__`` in front of
    the first line. Directive prologues such as ``'use strict'`` stay first:
    the record and function counters follow the last directive instead.
    """

    def instrument(self, content: str, path: str) -> str:
        masked = mask_comments_and_strings(content)
        for open_char, close_char in (("{", "}"), ("(", ")"), ("[", "]")):
            if not brackets_balanced(masked, open_char, close_char):
                raise InstrumentationError(
                    path, f"unbalanced '{open_char}{close_char}' in source"
                )

        variable = coverage_variable(path)
        maps = CoverageMaps()
        original_lines = content.split("\n")
        masked_lines = masked.split("\n")
        directives = _directive_ends(original_lines)
        deferred: dict[int, list[tuple[int, str]]] = {}
        output: list[str] = []

        stack: list[_Frame] = []
        previous_text = ""
        last_closed_word: str | None = None

        for line_number, (original, masked_line) in enumerate(
            zip(original_lines, masked_lines, strict=True), start=1
        ):
            insertions = deferred.pop(line_number, [])
            stripped = masked_line.strip()
            if not stripped:
                output.append(_apply(original, insertions))
                continue

            indent = len(masked_line) - len(masked_line.lstrip())
            if self._starts_statement(stripped, previous_text, stack):
                counter = maps.add(maps.statements, line_number, indent)
                insertions.append((indent, f"{variable}.s['{counter}']++; "))

            for column, char in enumerate(masked_line):
                if char in "([":
                    word = _word_before(masked_line[:column])
                    stack.append(_Frame(kind="group", opener=char, word=word))
                elif char == "{":
                    lead = masked_line[:column].rstrip() or previous_text
                    kind = _classify_brace(lead, stack, last_closed_word)
                    stack.append(_Frame(kind=kind, opener=char))
                    if kind in {"function", "branch"} and not masked_line[column + 1 :].strip():
                        bucket = maps.functions if kind == "function" else maps.branches
                        counter = maps.add(bucket, line_number, column)
                        slot = "f" if kind == "function" else "b"
                        text = f" {variable}.{slot}['{counter}']++;"
                        target = None
                        if kind == "function":
                            target = _prologue_end(line_number + 1, masked_lines, directives)
                        if target is None:
                            insertions.append((column + 1, text))
                        else:
                            end, terminator = directives[target]
                            deferred.setdefault(target, []).append((end, terminator + text))
                elif char in _PAIRS:
                    if not stack or stack[-1].opener != _PAIRS[char]:
                        raise InstrumentationError(
                            path, f"mismatched '{char}' on line {line_number}"
                        )
                    frame = stack.pop()
                    if char == ")":
                        last_closed_word = frame.word

            if stack and stack[-1].kind == "switch" and _CASE_LABEL_RE.match(stripped):
                counter = maps.add(maps.branches, line_number, indent)
                insertions.append((len(masked_line.rstrip()), f" {variable}.b['{counter}']++;"))

            output.append(_apply(original, insertions))
            previous_text = stripped

        header = _header(variable, path, maps)
        target = _prologue_end(1, masked_lines, directives)
        if target is not None:
            end, terminator = directives[target]
            output[target - 1] = _apply(output[target - 1], [(end, f"{terminator} {header}")])
        elif output:
            output[0] = header + output[0]
        return "\n".join(output)

    @staticmethod
    def _starts_statement(stripped: str, previous_text: str, stack: list[_Frame]) -> bool:
        if stack and stack[-1].kind not in _COUNTED_BODIES:
            return False
        if not _STATEMENT_START_RE.match(stripped):
            return False
        first_word = re.match(r"[A-Za-z_$][A-Za-z0-9_$]*", stripped)
        word = first_word.group(0) if first_word else ""
        if word in _NO_STATEMENT_WORDS:
            return False
        if not previous_text:
            return True
        end = previous_text[-1]
        if end == "}" and word == "while":
            return False
        if end == ":" and _CASE_LABEL_RE.match(previous_text):
            return True
        return end in ";{}"


def _word_before(text: str) -> str | None:
    match = _WORD_BEFORE_RE.search(text)
    return match.group(1) if match else None


def _directive_ends(lines: list[str]) -> dict[int, tuple[int, str]]:
    """Map lines holding a lone string-literal statement to the column after it.

    The second item is the terminator an insertion there needs: ``""`` after an
    explicit ``;``, otherwise ``";"``.
    """
    output: dict[int, tuple[int, str]] = {}
    for line_number, line in enumerate(lines, start=1):
        match = _DIRECTIVE_LINE_RE.match(line)
        if match is None:
            continue
        if match.group("semi"):
            output[line_number] = (match.end("semi"), "")
        else:
            output[line_number] = (match.end("literal"), ";")
    return output


def _prologue_end(
    first_line: int, masked_lines: list[str], directives: dict[int, tuple[int, str]]
) -> int | None:
    """Return the last directive line of a prologue starting at ``first_line``."""
    last = None
    for line_number in range(first_line, len(masked_lines) + 1):
        if line_number in directives:
            last = line_number
        elif masked_lines[line_number - 1].strip():
            break
    return last


def _classify_brace(lead: str, stack: list[_Frame], last_closed_word: str | None) -> str:
    """Decide what an opening brace starts from the code in front of it."""
    if not lead or lead[-1] in ";{}":
        return "block"
    if lead.endswith("=>"):
        return "function"
    if _CLASS_HEAD_RE.search(lead):
        return "class"
    if lead.endswith(")"):
        if last_closed_word in _BRANCH_WORDS:
            return "branch"
        if last_closed_word == "switch":
            return "switch"
        if last_closed_word in _BLOCK_WORDS:
            return "block"
        return "function"
    word = _word_before(lead)
    if word == "else":
        return "branch"
    if word in _PLAIN_BLOCK_WORDS:
        return "block"
    if lead.endswith(":") and stack and stack[-1].kind == "switch":
        return "block"
    return "object"


def _apply(line: str, insertions: list[tuple[int, str]]) -> str:
    for column, text in sorted(insertions, key=lambda item: item[0], reverse=True):
        line = line[:column] + text + line[column:]
    return line


def _header(variable: str, path: str, maps: CoverageMaps) -> str:
    record = {
        "path": path,
        "s": {key: 0 for key in maps.statements},
        "f": {key: 0 for key in maps.functions},
        "b": {key: 0 for key in maps.branches},
        "statementMap": maps.statements,
        "fnMap": maps.functions,
        "branchMap": maps.branches,
    }
    key = json.dumps(path)
    return (
        f"var {variable} = (function (g) {{ var c = g.{COVERAGE_GLOBAL} = "
        f"g.{COVERAGE_GLOBAL} || {{}}; if (!c[{key}]) {{ c[{key}] = "
        f"{json.dumps(record, sort_keys=True, separators=(',', ':'))}; }} return c[{key}]; }})"
        "(typeof window !== 'undefined' ? window : this); "
    )
