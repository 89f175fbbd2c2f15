"""Filter and sort language for the peer table.

    where version == 70016 and subver ~= "Satoshi"
    sort bytessent_per_msg.addrv2 desc
    clear | clear where | clear sort

Predicates are ANDed. Field paths walk nested objects by dotted segments;
arrays are compared as a whole, in compact JSON form.
"""

import json
import math
import re
from dataclasses import dataclass, replace
from typing import Any, Iterable, Sequence

from bitcoin_tui.errors import QueryError

OPERATORS = ("==", "!=", ">", ">=", "<", "<=", "~=")
COMMANDS = ("where", "sort", "clear")
DIRECTIONS = ("asc", "desc")
KEYWORDS = {"true": True, "false": False, "null": None}

# Used for completion before the first getpeerinfo answer arrives.
DEFAULT_FIELDS = (
    "addr",
    "addrbind",
    "bytesrecv",
    "bytessent",
    "connection_type",
    "id",
    "inbound",
    "lastrecv",
    "lastsend",
    "minping",
    "network",
    "pingtime",
    "relaytxes",
    "services",
    "startingheight",
    "subver",
    "synced_blocks",
    "synced_headers",
    "timeoffset",
    "transport_protocol_type",
    "version",
)

HELP_TEXT = """\
Peer query commands (press : to open the prompt)

  where <field> <op> <value> [and <field> <op> <value> ...]
  sort <field> [asc|desc]
  clear            remove filters and sort
  clear where      remove filters only
  clear sort       remove sort only

Operators
  ==  !=           exact match on the printed value
  >  >=  <  <=     numeric when both sides are numbers, else text order
  ~=               substring match, case-sensitive

Fields use dots for nested values, e.g. bytessent_per_msg.addrv2.
A new where on a field replaces the old condition on that field.
A missing field only matches == null.
Values: numbers, "quoted text", bare words, true, false, null.

Prompt keys
  tab / shift+tab  cycle completions
  right / enter    accept completion
  enter            run command
  escape           close prompt
"""

_SEGMENT = re.compile(r"^[A-Za-z0-9_*\-]+$")
_NUMBER = re.compile(r"^-?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$")
_OP_CHARS = "=!<>~"


@dataclass(frozen=True)
class Token:
    kind: str  # "word", "string", "number" or "op"
    text: str
    start: int
    end: int
    value: Any = None
    closed: bool = True


@dataclass(frozen=True)
class Predicate:
    field_path: str
    operator: str
    literal: Any

    def __str__(self) -> str:
        return f"{self.field_path} {self.operator} {format_literal(self.literal)}"


@dataclass(frozen=True)
class SortSpec:
    field_path: str
    descending: bool = False

    def __str__(self) -> str:
        return f"{self.field_path} {'desc' if self.descending else 'asc'}"


@dataclass(frozen=True)
class Query:
    where: tuple[Predicate, ...] = ()
    sort: SortSpec | None = None

    @property
    def is_empty(self) -> bool:
        return not self.where and self.sort is None

    def describe(self) -> str:
        parts = []
        if self.where:
            parts.append("where " + " and ".join(str(p) for p in self.where))
        if self.sort is not None:
            parts.append(f"sort {self.sort}")
        return " | ".join(parts)


@dataclass(frozen=True)
class WhereCommand:
    predicates: tuple[Predicate, ...]


@dataclass(frozen=True)
class SortCommand:
    sort: SortSpec


@dataclass(frozen=True)
class ClearCommand:
    part: str = "all"  # "all", "where" or "sort"


Command = WhereCommand | SortCommand | ClearCommand


@dataclass(frozen=True)
class Completion:
    start: int
    end: int
    candidates: tuple[str, ...]


def format_literal(value: Any) -> str:
    if isinstance(value, str):
        if value and _is_bare(value):
            return value
        return json.dumps(value)
    return normalize(value)


def _is_bare(text: str) -> bool:
    if text.lower() in KEYWORDS or _NUMBER.match(text):
        return False
    return not any(ch.isspace() or ch in _OP_CHARS or ch in "\"'" for ch in text)


# --- tokenizer -------------------------------------------------------------


def tokenize(text: str, strict: bool = True) -> list[Token]:
    """Split a command into tokens.

    With ``strict=False`` unterminated strings and unknown operators are kept
    as tokens instead of raising, which completion needs for half-typed input.
    """
    tokens: list[Token] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        start = i
        if ch in "\"'":
            quote = ch
            i += 1
            chars = []
            closed = False
            while i < n:
                c = text[i]
                if c == "\\" and i + 1 < n:
                    chars.append(text[i + 1])
                    i += 2
                    continue
                if c == quote:
                    closed = True
                    i += 1
                    break
                chars.append(c)
                i += 1
            if not closed and strict:
                raise QueryError("Unterminated string", start)
            tokens.append(Token("string", text[start:i], start, i, "".join(chars), closed))
        elif ch in _OP_CHARS:
            while i < n and text[i] in _OP_CHARS:
                i += 1
            op = text[start:i]
            if op not in OPERATORS and strict:
                raise QueryError(f"Unknown operator {op}", start)
            tokens.append(Token("op", op, start, i, op))
        else:
            while i < n and not text[i].isspace() and text[i] not in _OP_CHARS and text[i] not in "\"'":
                i += 1
            word = text[start:i]
            if _NUMBER.match(word):
                tokens.append(Token("number", word, start, i, _parse_number(word)))
            else:
                tokens.append(Token("word", word, start, i, word))
    return tokens


def _parse_number(text: str) -> int | float:
    try:
        return int(text)
    except ValueError:
        return float(text)


# --- parser ----------------------------------------------------------------


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0

    def peek(self) -> Token | None:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def at_end(self) -> bool:
        return self.pos >= len(self.tokens)

    def end_offset(self) -> int:
        return len(self.text)

    def keyword(self, token: Token | None) -> str | None:
        if token is not None and token.kind == "word":
            return token.text.lower()
        return None

    def expect_end(self) -> None:
        token = self.peek()
        if token is not None:
            raise QueryError(f"Unexpected {token.text!r}", token.start)

    def parse(self) -> Command:
        token = self.peek()
        if token is None:
            raise QueryError("Empty command", 0)
        word = self.keyword(token)
        if word == "where":
            self.advance()
            return self.parse_where()
        if word == "sort":
            self.advance()
            return self.parse_sort()
        if word == "clear":
            self.advance()
            return self.parse_clear()
        raise QueryError(f"Unknown command {token.text!r}; use where, sort or clear", token.start)

    def parse_where(self) -> WhereCommand:
        predicates = [self.parse_predicate()]
        while not self.at_end():
            token = self.advance()
            if self.keyword(token) != "and":
                raise QueryError(f"Expected 'and', got {token.text!r}", token.start)
            predicates.append(self.parse_predicate())
        return WhereCommand(tuple(predicates))

    def parse_predicate(self) -> Predicate:
        field_path = self.parse_field()
        token = self.peek()
        if token is None or token.kind != "op":
            offset = token.start if token is not None else self.end_offset()
            raise QueryError(f"Expected an operator after {field_path}", offset)
        operator = self.advance().text
        return Predicate(field_path, operator, self.parse_literal(operator))

    def parse_field(self) -> str:
        token = self.peek()
        if token is None:
            raise QueryError("Expected a field name", self.end_offset())
        if token.kind not in ("word", "number"):
            raise QueryError(f"Expected a field name, got {token.text!r}", token.start)
        self.advance()
        segments = token.text.split(".")
        if not all(_SEGMENT.match(s) for s in segments):
            raise QueryError(f"Invalid field path {token.text!r}", token.start)
        return token.text

    def parse_literal(self, operator: str) -> Any:
        token = self.peek()
        if token is None:
            raise QueryError(f"Expected a value after {operator}", self.end_offset())
        if token.kind == "op":
            raise QueryError(f"Expected a value, got {token.text!r}", token.start)
        self.advance()
        if token.kind == "word" and token.text.lower() in KEYWORDS:
            return KEYWORDS[token.text.lower()]
        return token.value

    def parse_sort(self) -> SortCommand:
        field_path = self.parse_field()
        descending = False
        token = self.peek()
        if token is not None:
            direction = self.keyword(token)
            if direction not in DIRECTIONS:
                raise QueryError(f"Expected asc or desc, got {token.text!r}", token.start)
            self.advance()
            descending = direction == "desc"
        self.expect_end()
        return SortCommand(SortSpec(field_path, descending))

    def parse_clear(self) -> ClearCommand:
        token = self.peek()
        if token is None:
            return ClearCommand("all")
        part = self.keyword(token)
        if part not in ("where", "sort"):
            raise QueryError(f"Expected where or sort, got {token.text!r}", token.start)
        self.advance()
        self.expect_end()
        return ClearCommand(part)


def parse_command(text: str) -> Command:
    return _Parser(text).parse()


def apply_command(query: Query, command: Command | str) -> Query:
    """Fold one command into the query and return the new query."""
    if isinstance(command, str):
        command = parse_command(command)
    if isinstance(command, ClearCommand):
        if command.part == "where":
            return replace(query, where=())
        if command.part == "sort":
            return replace(query, sort=None)
        return Query()
    if isinstance(command, SortCommand):
        return replace(query, sort=command.sort)
    fields = {p.field_path for p in command.predicates}
    where = [p for p in query.where if p.field_path not in fields]
    where.extend(command.predicates)
    return replace(query, where=tuple(where))


# --- evaluator -------------------------------------------------------------


def resolve(record: Any, field_path: str) -> tuple[bool, Any]:
    value = record
    for segment in field_path.split("."):
        if not isinstance(value, dict) or segment not in value:
            return False, None
        value = value[segment]
    return True, value


def normalize(value: Any) -> str:
    """Printed form used for ==, != and ~=."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


def as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and _NUMBER.match(value.strip()):
        return float(value)
    return None


def matches(record: Any, predicate: Predicate) -> bool:
    found, value = resolve(record, predicate.field_path)
    op = predicate.operator
    if not found:
        return op == "==" and predicate.literal is None
    if op in ("==", "!="):
        equal = normalize(value) == normalize(predicate.literal)
        return equal if op == "==" else not equal
    if op == "~=":
        return normalize(predicate.literal) in normalize(value)
    left, right = as_number(value), as_number(predicate.literal)
    if left is None or right is None:
        left, right = normalize(value), normalize(predicate.literal)
    if op == ">":
        return left > right
    if op == ">=":
        return left >= right
    if op == "<":
        return left < right
    return left <= right


def _sort_key(record: Any, field_path: str) -> tuple:
    found, value = resolve(record, field_path)
    if not found:
        return (0, 0)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    return (3, normalize(value))


def evaluate(peers: Sequence[dict], query: Query) -> list[dict]:
    rows = [p for p in peers if all(matches(p, pred) for pred in query.where)]
    if query.sort is not None:
        path = query.sort.field_path
        rows.sort(key=lambda p: _sort_key(p, path), reverse=query.sort.descending)
    return rows


# --- completion ------------------------------------------------------------


def field_paths(peers: Iterable[dict]) -> list[str]:
    paths: set[str] = set()

    def walk(value: Any, prefix: str) -> None:
        for key, child in value.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            if isinstance(child, dict) and child:
                walk(child, path)
            else:
                paths.add(path)

    for peer in peers:
        if isinstance(peer, dict):
            walk(peer, "")
    return sorted(paths) if paths else list(DEFAULT_FIELDS)


def field_values(peers: Iterable[dict], field_path: str, limit: int = 50) -> list[str]:
    values: set[str] = set()
    for peer in peers:
        found, value = resolve(peer, field_path)
        if found:
            values.add(format_literal(value))
    return sorted(values)[:limit]


def _filter(candidates: Iterable[str], partial: str) -> tuple[str, ...]:
    bare = partial.lstrip("\"'")
    return tuple(
        c for c in candidates if c.startswith(partial) or c.lstrip("\"'").startswith(bare)
    )


def complete(text: str, cursor: int, peers: Sequence[dict]) -> Completion:
    """Candidates for the token under the cursor, in a stable order."""
    cursor = max(0, min(cursor, len(text)))
    tokens = tokenize(text[:cursor], strict=False)
    partial = ""
    start = cursor
    if tokens and tokens[-1].end == cursor and not (cursor > 0 and text[cursor - 1].isspace()):
        current = tokens.pop()
        partial = text[current.start:cursor]
        start = current.start
    end = cursor
    while end < len(text) and not text[end].isspace():
        end += 1

    words = [t.text.lower() for t in tokens]
    candidates: tuple[str, ...] = ()
    if not words:
        candidates = _filter(COMMANDS, partial.lower())
    elif words[0] == "clear":
        if len(words) == 1:
            candidates = _filter(("where", "sort"), partial.lower())
    elif words[0] == "sort":
        if len(words) == 1:
            candidates = _filter(field_paths(peers), partial)
        elif len(words) == 2:
            candidates = _filter(DIRECTIONS, partial.lower())
    elif words[0] == "where":
        phase = (len(words) - 1) % 4
        if phase == 0:
            candidates = _filter(field_paths(peers), partial)
        elif phase == 1:
            candidates = _filter(OPERATORS, partial)
        elif phase == 2:
            candidates = _filter(field_values(peers, tokens[-2].text), partial)
        else:
            candidates = _filter(("and",), partial.lower())
    return Completion(start=start, end=end, candidates=candidates)


def accept_completion(text: str, completion: Completion, candidate: str) -> tuple[str, int]:
    """Splice ``candidate`` in; returns the new text and cursor."""
    head = text[: completion.start] + candidate
    tail = text[completion.end:]
    if not tail:
        head += " "
    return head + tail, len(head)
