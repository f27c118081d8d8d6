"""Path expressions, templates and selectors over JSON-like documents.

Everything here is parsed once (normally when a workflow definition is built)
and evaluated many times. Parsing errors raise :class:`InvalidPath`;
evaluation errors raise :class:`MissingField` or :class:`IntrinsicFailed`.

Supported syntax:

* paths: ``$``, ``$.data.id``, ``$[0]``, ``$.items[1].name``, ``$['odd.key']``
* templates: ``"Hi {customer.data.name}"``; ``{{`` and ``}}`` are literal braces
* intrinsics: ``States.Format('{} x', $.a)``, ``States.StringToJson($.body)``,
  ``States.JsonToString($.doc)``, ``States.Array($.a, 'b')``
* selectors: mappings whose ``"key.$"`` entries hold a path, an intrinsic or a
  template; all other entries are literals
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from .errors import IntrinsicFailed, InvalidPath, MissingField

Segment = str | int


class Expression(Protocol):
    def evaluate(self, context: Any) -> Any: ...


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _format_segment(segment: Segment) -> str:
    if isinstance(segment, int):
        return f"[{segment}]"
    if segment and all(ch.isalnum() or ch in "_-" for ch in segment):
        return f".{segment}"
    escaped = segment.replace("\\", "\\\\").replace("'", "\\'")
    return f"['{escaped}']"


@dataclass(frozen=True, slots=True)
class PathExpression:
    """A parsed reference into a nested document."""

    text: str
    segments: tuple[Segment, ...]

    @classmethod
    def parse(cls, text: str) -> PathExpression:
        source = text.strip()
        if not source.startswith("$"):
            raise InvalidPath(f"Path must start with '$': {text!r}")

        segments: list[Segment] = []
        pos = 1
        end = len(source)
        while pos < end:
            ch = source[pos]
            if ch == ".":
                start = pos + 1
                pos = start
                while pos < end and source[pos] not in ".[]'\" \t\n":
                    pos += 1
                if pos == start:
                    raise InvalidPath(f"Empty field name at offset {start}: {text!r}")
                segments.append(source[start:pos])
            elif ch == "[":
                segment, pos = _parse_bracket(source, pos, text)
                segments.append(segment)
            else:
                raise InvalidPath(f"Unexpected {ch!r} at offset {pos}: {text!r}")

        return cls(text=source, segments=tuple(segments))

    def extract(self, context: Any) -> Any:
        current = context
        walked = "$"
        for segment in self.segments:
            walked += _format_segment(segment)
            if isinstance(segment, int):
                if not isinstance(current, list) or not 0 <= segment < len(current):
                    raise MissingField(self.text, segment=walked)
                current = current[segment]
            else:
                if not isinstance(current, Mapping) or segment not in current:
                    raise MissingField(self.text, segment=walked)
                current = current[segment]
        return current

    def evaluate(self, context: Any) -> Any:
        return self.extract(context)

    @property
    def is_root(self) -> bool:
        return not self.segments

    def __str__(self) -> str:
        return self.text


def _parse_bracket(source: str, pos: int, text: str) -> tuple[Segment, int]:
    pos += 1
    end = len(source)
    if pos < end and source[pos] in "'\"":
        literal, pos = _read_quoted(source, pos, text)
        if pos >= end or source[pos] != "]":
            raise InvalidPath(f"Unterminated bracket: {text!r}")
        return literal, pos + 1

    start = pos
    while pos < end and source[pos].isdigit():
        pos += 1
    if pos == start or pos >= end or source[pos] != "]":
        raise InvalidPath(f"Bracket must hold an index or a quoted key: {text!r}")
    return int(source[start:pos]), pos + 1


def _read_quoted(source: str, pos: int, text: str) -> tuple[str, int]:
    quote = source[pos]
    pos += 1
    chars: list[str] = []
    while pos < len(source):
        ch = source[pos]
        if ch == "\\" and pos + 1 < len(source):
            chars.append(source[pos + 1])
            pos += 2
            continue
        if ch == quote:
            return "".join(chars), pos + 1
        chars.append(ch)
        pos += 1
    raise InvalidPath(f"Unterminated string literal: {text!r}")


@dataclass(frozen=True, slots=True)
class Literal:
    value: Any

    def evaluate(self, context: Any) -> Any:
        return self.value


# --- templates --------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Template:
    """Literal text interleaved with ``{path}`` placeholders."""

    text: str
    parts: tuple[str | PathExpression, ...]

    @classmethod
    def parse(cls, text: str) -> Template:
        parts: list[str | PathExpression] = []
        buf: list[str] = []
        pos = 0
        end = len(text)
        while pos < end:
            ch = text[pos]
            if ch == "{" and text.startswith("{{", pos):
                buf.append("{")
                pos += 2
            elif ch == "}" and text.startswith("}}", pos):
                buf.append("}")
                pos += 2
            elif ch == "{":
                close = text.find("}", pos + 1)
                if close == -1:
                    raise InvalidPath(f"Unclosed placeholder in template: {text!r}")
                ref = text[pos + 1 : close].strip()
                if not ref:
                    raise InvalidPath(f"Empty placeholder in template: {text!r}")
                if buf:
                    parts.append("".join(buf))
                    buf = []
                parts.append(PathExpression.parse(ref if ref.startswith("$") else f"$.{ref}"))
                pos = close + 1
            elif ch == "}":
                raise InvalidPath(f"Unmatched '}}' in template: {text!r}")
            else:
                buf.append(ch)
                pos += 1
        if buf:
            parts.append("".join(buf))
        return cls(text=text, parts=tuple(parts))

    @property
    def paths(self) -> tuple[PathExpression, ...]:
        return tuple(p for p in self.parts if isinstance(p, PathExpression))

    def render(self, context: Any) -> str:
        return "".join(
            p if isinstance(p, str) else _stringify(p.extract(context)) for p in self.parts
        )

    def evaluate(self, context: Any) -> Any:
        return self.render(context)


# --- intrinsic functions ----------------------------------------------------


def _format(template: Any, *args: Any) -> str:
    if not isinstance(template, str):
        raise IntrinsicFailed("States.Format expects a string template")
    pieces = _split_format(template)
    if len(pieces) - 1 != len(args):
        raise IntrinsicFailed(
            f"States.Format template has {len(pieces) - 1} placeholder(s) but got {len(args)}"
        )
    out = [pieces[0]]
    for arg, piece in zip(args, pieces[1:]):
        out.append(_stringify(arg))
        out.append(piece)
    return "".join(out)


def _split_format(template: str) -> list[str]:
    pieces: list[str] = []
    buf: list[str] = []
    pos = 0
    while pos < len(template):
        ch = template[pos]
        if ch == "\\" and pos + 1 < len(template) and template[pos + 1] in "{}\\":
            buf.append(template[pos + 1])
            pos += 2
        elif template.startswith("{}", pos):
            pieces.append("".join(buf))
            buf = []
            pos += 2
        else:
            buf.append(ch)
            pos += 1
    pieces.append("".join(buf))
    return pieces


def _string_to_json(value: Any) -> Any:
    if not isinstance(value, str):
        raise IntrinsicFailed("States.StringToJson expects a string")
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise IntrinsicFailed(f"States.StringToJson could not parse input: {e}") from e


def _json_to_string(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _array(*values: Any) -> list[Any]:
    return list(values)


# name -> (implementation, minimum args, maximum args or None for variadic)
_INTRINSICS: dict[str, tuple[Callable[..., Any], int, int | None]] = {
    "States.Format": (_format, 1, None),
    "States.StringToJson": (_string_to_json, 1, 1),
    "States.JsonToString": (_json_to_string, 1, 1),
    "States.Array": (_array, 0, None),
}


@dataclass(frozen=True, slots=True)
class IntrinsicCall:
    name: str
    args: tuple[Expression, ...]

    def evaluate(self, context: Any) -> Any:
        func, _, _ = _INTRINSICS[self.name]
        return func(*(arg.evaluate(context) for arg in self.args))


class _IntrinsicParser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def parse(self) -> IntrinsicCall:
        call = self._call()
        self._skip_ws()
        if self.pos != len(self.text):
            raise InvalidPath(f"Trailing input after intrinsic call: {self.text!r}")
        return call

    def _skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def _call(self) -> IntrinsicCall:
        self._skip_ws()
        open_paren = self.text.find("(", self.pos)
        if open_paren == -1:
            raise InvalidPath(f"Expected '(' in intrinsic call: {self.text!r}")
        name = self.text[self.pos : open_paren].strip()
        if name not in _INTRINSICS:
            raise InvalidPath(f"Unknown intrinsic function {name!r}")
        self.pos = open_paren + 1

        args: list[Expression] = []
        self._skip_ws()
        if self._peek() == ")":
            self.pos += 1
        else:
            while True:
                args.append(self._argument())
                self._skip_ws()
                ch = self._peek()
                self.pos += 1
                if ch == ")":
                    break
                if ch != ",":
                    raise InvalidPath(f"Expected ',' or ')' in intrinsic call: {self.text!r}")

        _, low, high = _INTRINSICS[name]
        if len(args) < low or (high is not None and len(args) > high):
            raise InvalidPath(f"{name} called with {len(args)} argument(s): {self.text!r}")
        if name == "States.Format" and isinstance(args[0], Literal):
            template = args[0].value
            if isinstance(template, str) and len(_split_format(template)) != len(args):
                raise InvalidPath(f"States.Format placeholder count mismatch: {self.text!r}")
        return IntrinsicCall(name=name, args=tuple(args))

    def _peek(self) -> str:
        if self.pos >= len(self.text):
            raise InvalidPath(f"Unexpected end of intrinsic call: {self.text!r}")
        return self.text[self.pos]

    def _argument(self) -> Expression:
        self._skip_ws()
        ch = self._peek()
        if ch == "'":
            value, self.pos = _read_format_literal(self.text, self.pos)
            return Literal(value)
        if ch == "$":
            return PathExpression.parse(self._path_text())
        if self.text.startswith("States.", self.pos):
            return self._call()
        return Literal(self._scalar())

    def _path_text(self) -> str:
        start = self.pos
        depth = 0
        quote: str | None = None
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if quote:
                if ch == "\\":
                    self.pos += 1
                elif ch == quote:
                    quote = None
            elif ch in "'\"" and depth:
                quote = ch
            elif ch == "[":
                depth += 1
            elif ch == "]":
                depth -= 1
            elif depth == 0 and (ch in ",)" or ch.isspace()):
                break
            self.pos += 1
        return self.text[start : self.pos]

    def _scalar(self) -> Any:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in ",)" and not (
            self.text[self.pos].isspace()
        ):
            self.pos += 1
        token = self.text[start : self.pos]
        try:
            return json.loads(token)
        except json.JSONDecodeError as e:
            raise InvalidPath(f"Invalid literal {token!r} in intrinsic call") from e


def _read_format_literal(text: str, pos: int) -> tuple[str, int]:
    # Keeps \{ and \} escapes intact so States.Format can tell them from placeholders.
    pos += 1
    chars: list[str] = []
    while pos < len(text):
        ch = text[pos]
        if ch == "\\" and pos + 1 < len(text):
            nxt = text[pos + 1]
            chars.append(f"\\{nxt}" if nxt in "{}" else nxt)
            pos += 2
            continue
        if ch == "'":
            return "".join(chars), pos + 1
        chars.append(ch)
        pos += 1
    raise InvalidPath(f"Unterminated string literal: {text!r}")


def compile_expression(text: str) -> Expression:
    """Compile the value of a ``"key.$"`` selector entry."""

    source = text.strip()
    if source.startswith("$"):
        return PathExpression.parse(source)
    if source.startswith("States."):
        return _IntrinsicParser(source).parse()
    return Template.parse(text)


# --- selectors --------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Object:
    fields: tuple[tuple[str, Expression], ...]

    def evaluate(self, context: Any) -> dict[str, Any]:
        return {key: expr.evaluate(context) for key, expr in self.fields}


@dataclass(frozen=True, slots=True)
class _Array:
    items: tuple[Expression, ...]

    def evaluate(self, context: Any) -> list[Any]:
        return [item.evaluate(context) for item in self.items]


def _compile_value(value: Any) -> Expression:
    if isinstance(value, Mapping):
        return _compile_object(value)
    if isinstance(value, list | tuple):
        return _Array(items=tuple(_compile_value(v) for v in value))
    return Literal(value)


def _compile_object(mapping: Mapping[str, Any]) -> _Object:
    fields: dict[str, Expression] = {}
    for key, value in mapping.items():
        if not isinstance(key, str):
            raise InvalidPath(f"Selector keys must be strings, got {key!r}")
        if key.endswith(".$"):
            if not isinstance(value, str):
                raise InvalidPath(f"Selector entry {key!r} must hold an expression string")
            name, expr = key[:-2], compile_expression(value)
        else:
            name, expr = key, _compile_value(value)
        if name in fields:
            raise InvalidPath(f"Duplicate selector key {name!r}")
        fields[name] = expr
    return _Object(fields=tuple(fields.items()))


@dataclass(frozen=True, slots=True)
class Selector:
    """A compiled mapping that reshapes a document into a new one."""

    source: Mapping[str, Any]
    root: _Object

    @classmethod
    def compile(cls, mapping: Mapping[str, Any]) -> Selector:
        if not isinstance(mapping, Mapping):
            raise InvalidPath("A selector must be a mapping")
        return cls(source=mapping, root=_compile_object(mapping))

    def apply(self, context: Any) -> dict[str, Any]:
        return self.root.evaluate(context)


def extract(context: Any, path: str | PathExpression) -> Any:
    expr = path if isinstance(path, PathExpression) else PathExpression.parse(path)
    return expr.extract(context)


def render(template: str | Template, context: Any) -> str:
    tmpl = template if isinstance(template, Template) else Template.parse(template)
    return tmpl.render(context)


def project(context: Any, selector: Mapping[str, Any] | Selector) -> dict[str, Any]:
    compiled = selector if isinstance(selector, Selector) else Selector.compile(selector)
    return compiled.apply(context)
