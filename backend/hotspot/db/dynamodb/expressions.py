"""
Evaluator for the subset of DynamoDB expression syntax used by this codebase.

Backs `MemoryTable`. Supported:
- conditions: = <> < <= > >=, BETWEEN, IN, AND/OR/NOT, parentheses,
  attribute_exists, attribute_not_exists, begins_with, contains
- updates: SET with operands, `a + b` / `a - b`, if_not_exists, list_append;
  REMOVE
- projections: comma-separated top-level attributes

Only top-level attribute paths are supported (no `a.b` or `a[0]`).
Placeholders that are never referenced raise, as DynamoDB does.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from .errors import DdbValidation


MISSING = object()

_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<name>#[A-Za-z0-9_]+)"
    r"|(?P<value>:[A-Za-z0-9_]+)"
    r"|(?P<op><>|<=|>=|=|<|>|\(|\)|,|\+|-)"
    r"|(?P<ident>[A-Za-z_][A-Za-z0-9_]*)"
    r")"
)

_COMPARATORS = {"=", "<>", "<", "<=", ">", ">="}


@dataclass(slots=True)
class Token:
    kind: str
    text: str


def tokenize(expression: str) -> list[Token]:
    out: list[Token] = []
    pos = 0
    text = expression or ""
    while pos < len(text):
        if text[pos:].strip() == "":
            break
        m = _TOKEN_RE.match(text, pos)
        if not m or m.end() == pos:
            raise DdbValidation(message=f"Invalid expression near: {text[pos:pos + 20]!r}")
        kind = m.lastgroup or ""
        out.append(Token(kind=kind, text=m.group(kind)))
        pos = m.end()
    return out


@dataclass(slots=True)
class ExpressionContext:
    """Placeholder maps shared by every expression of a single request."""

    names: Mapping[str, str] = field(default_factory=dict)
    values: Mapping[str, Any] = field(default_factory=dict)
    used_names: set[str] = field(default_factory=set)
    used_values: set[str] = field(default_factory=set)

    def name(self, ref: str) -> str:
        if ref not in self.names:
            raise DdbValidation(message=f"An expression attribute name used in the document path is not defined: {ref}")
        self.used_names.add(ref)
        return str(self.names[ref])

    def value(self, ref: str) -> Any:
        if ref not in self.values:
            raise DdbValidation(message=f"An expression attribute value used in expression is not defined: {ref}")
        self.used_values.add(ref)
        return self.values[ref]

    def check_unused(self) -> None:
        unused_names = set(self.names) - self.used_names
        if unused_names:
            raise DdbValidation(
                message=f"Value provided in ExpressionAttributeNames unused in expressions: {sorted(unused_names)}"
            )
        unused_values = set(self.values) - self.used_values
        if unused_values:
            raise DdbValidation(
                message=f"Value provided in ExpressionAttributeValues unused in expressions: {sorted(unused_values)}"
            )


Operand = Callable[[Mapping[str, Any]], Any]
Predicate = Callable[[Mapping[str, Any]], bool]


def _compare(op: str, left: Any, right: Any) -> bool:
    if left is MISSING or right is MISSING:
        return op == "<>" and not (left is MISSING and right is MISSING)
    try:
        if op == "=":
            return left == right
        if op == "<>":
            return left != right
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
    except TypeError:
        return False
    raise DdbValidation(message=f"Unsupported comparator: {op}")


class _Parser:
    def __init__(self, expression: str, ctx: ExpressionContext):
        self.tokens = tokenize(expression)
        self.pos = 0
        self.ctx = ctx
        self.expression = expression

    # --- token helpers ---

    def peek(self, offset: int = 0) -> Token | None:
        i = self.pos + offset
        return self.tokens[i] if i < len(self.tokens) else None

    def peek_keyword(self, *words: str) -> bool:
        tok = self.peek()
        return tok is not None and tok.kind == "ident" and tok.text.upper() in words

    def next(self) -> Token:
        tok = self.peek()
        if tok is None:
            raise DdbValidation(message=f"Unexpected end of expression: {self.expression!r}")
        self.pos += 1
        return tok

    def expect(self, text: str) -> None:
        tok = self.next()
        if tok.text.upper() != text.upper():
            raise DdbValidation(message=f"Expected {text!r} but found {tok.text!r} in {self.expression!r}")

    def done(self) -> None:
        if self.peek() is not None:
            raise DdbValidation(message=f"Unexpected token {self.peek().text!r} in {self.expression!r}")

    # --- paths & operands ---

    def path(self) -> str:
        tok = self.next()
        if tok.kind == "name":
            return self.ctx.name(tok.text)
        if tok.kind == "ident":
            return tok.text
        raise DdbValidation(message=f"Expected an attribute path, found {tok.text!r}")

    def operand(self) -> Operand:
        tok = self.peek()
        if tok is None:
            raise DdbValidation(message=f"Unexpected end of expression: {self.expression!r}")
        if tok.kind == "value":
            self.pos += 1
            v = self.ctx.value(tok.text)
            return lambda _item: v
        if tok.kind == "ident" and (self.peek(1) or Token("", "")).text == "(":
            return self.function_operand()
        attr = self.path()
        return lambda item: item.get(attr, MISSING)

    def function_operand(self) -> Operand:
        fname = self.next().text.lower()
        self.expect("(")
        if fname == "if_not_exists":
            attr = self.path()
            self.expect(",")
            fallback = self.value_expr()
            self.expect(")")

            def _if_not_exists(item: Mapping[str, Any]) -> Any:
                cur = item.get(attr, MISSING)
                return fallback(item) if cur is MISSING else cur

            return _if_not_exists
        if fname == "list_append":
            left = self.value_expr()
            self.expect(",")
            right = self.value_expr()
            self.expect(")")
            return lambda item: list(left(item) or []) + list(right(item) or [])
        raise DdbValidation(message=f"Unsupported function in operand: {fname}")

    def value_expr(self) -> Operand:
        left = self.operand()
        tok = self.peek()
        if tok is not None and tok.text in ("+", "-"):
            op = self.next().text
            right = self.operand()

            def _arith(item: Mapping[str, Any]) -> Any:
                lv, rv = left(item), right(item)
                if lv is MISSING or rv is MISSING:
                    raise DdbValidation(message="The provided expression refers to an attribute that does not exist in the item")
                return lv + rv if op == "+" else lv - rv

            return _arith
        return left

    # --- conditions ---

    def condition(self) -> Predicate:
        left = self.and_condition()
        while self.peek_keyword("OR"):
            self.next()
            right = self.and_condition()
            left = (lambda a, b: lambda item: a(item) or b(item))(left, right)
        return left

    def and_condition(self) -> Predicate:
        left = self.not_condition()
        while self.peek_keyword("AND"):
            self.next()
            right = self.not_condition()
            left = (lambda a, b: lambda item: a(item) and b(item))(left, right)
        return left

    def not_condition(self) -> Predicate:
        if self.peek_keyword("NOT"):
            self.next()
            inner = self.not_condition()
            return lambda item: not inner(item)
        return self.primary()

    def primary(self) -> Predicate:
        tok = self.peek()
        if tok is not None and tok.text == "(":
            self.next()
            inner = self.condition()
            self.expect(")")
            return inner

        if tok is not None and tok.kind == "ident" and (self.peek(1) or Token("", "")).text == "(":
            fname = tok.text.lower()
            if fname in ("attribute_exists", "attribute_not_exists", "begins_with", "contains"):
                return self.function_condition()

        left = self.operand()
        nxt = self.peek()
        if nxt is not None and nxt.text in _COMPARATORS:
            op = self.next().text
            right = self.operand()
            return lambda item: _compare(op, left(item), right(item))
        if self.peek_keyword("BETWEEN"):
            self.next()
            low = self.operand()
            self.expect("AND")
            high = self.operand()
            return lambda item: _compare(">=", left(item), low(item)) and _compare("<=", left(item), high(item))
        if self.peek_keyword("IN"):
            self.next()
            self.expect("(")
            options = [self.operand()]
            while (self.peek() or Token("", "")).text == ",":
                self.next()
                options.append(self.operand())
            self.expect(")")
            return lambda item: any(_compare("=", left(item), o(item)) for o in options)
        raise DdbValidation(message=f"Invalid condition in {self.expression!r}")

    def function_condition(self) -> Predicate:
        fname = self.next().text.lower()
        self.expect("(")
        attr = self.path()
        if fname == "attribute_exists":
            self.expect(")")
            return lambda item: attr in item
        if fname == "attribute_not_exists":
            self.expect(")")
            return lambda item: attr not in item
        self.expect(",")
        arg = self.operand()
        self.expect(")")
        if fname == "begins_with":

            def _begins_with(item: Mapping[str, Any]) -> bool:
                cur, prefix = item.get(attr, MISSING), arg(item)
                return isinstance(cur, str) and isinstance(prefix, str) and cur.startswith(prefix)

            return _begins_with

        def _contains(item: Mapping[str, Any]) -> bool:
            cur, needle = item.get(attr, MISSING), arg(item)
            if isinstance(cur, str):
                return isinstance(needle, str) and needle in cur
            if isinstance(cur, (list, set, frozenset, tuple)):
                return needle in cur
            return False

        return _contains


def compile_condition(expression: str, ctx: ExpressionContext) -> Predicate:
    parser = _Parser(expression, ctx)
    pred = parser.condition()
    parser.done()
    return pred


def compile_projection(expression: str, ctx: ExpressionContext) -> list[str]:
    parser = _Parser(expression, ctx)
    attrs = [parser.path()]
    while parser.peek() is not None:
        parser.expect(",")
        attrs.append(parser.path())
    return attrs


@dataclass(slots=True)
class UpdatePlan:
    sets: list[tuple[str, Operand]]
    removes: list[str]

    def apply(self, item: dict[str, Any]) -> dict[str, Any]:
        # Every right-hand side sees the item as it was before the update.
        before = dict(item)
        out = dict(item)
        for attr, value in self.sets:
            out[attr] = value(before)
        for attr in self.removes:
            out.pop(attr, None)
        return out


def compile_update(expression: str, ctx: ExpressionContext) -> UpdatePlan:
    parser = _Parser(expression, ctx)
    plan = UpdatePlan(sets=[], removes=[])
    if parser.peek() is None:
        raise DdbValidation(message="Invalid UpdateExpression: The expression can not be empty")
    while parser.peek() is not None:
        clause = parser.next()
        word = clause.text.upper()
        if word == "SET":
            while True:
                attr = parser.path()
                parser.expect("=")
                plan.sets.append((attr, parser.value_expr()))
                if (parser.peek() or Token("", "")).text != ",":
                    break
                parser.next()
        elif word == "REMOVE":
            while True:
                plan.removes.append(parser.path())
                if (parser.peek() or Token("", "")).text != ",":
                    break
                parser.next()
        else:
            raise DdbValidation(message=f"Unsupported update clause: {clause.text!r}")
    return plan
