"""
Module: expressions.py
Purpose:
    Parser for the derive/filter mini-language:
      - tokenize(): regex tokenizer (numbers, quoted strings, identifiers, operators)
      - parse_expression(): recursive descent with precedence climbing → immutable AST
      - referenced_columns(), function_calls(): AST walkers used by validation

Grammar (keywords are case-insensitive):
    or_expr    := and_expr (OR and_expr)*
    and_expr   := not_expr (AND not_expr)*
    not_expr   := NOT not_expr | predicate
    predicate  := arith [ cmp arith
                        | [NOT] IN '(' arith (',' arith)* ')'
                        | [NOT] BETWEEN arith AND arith
                        | [NOT] LIKE arith
                        | IS [NOT] NULL ]
    arith      := unary (('+'|'-'|'*'|'/') unary)*      -- precedence climbing
    unary      := '-' unary | atom
    atom       := number | string | NULL | TRUE | FALSE | column | name '(' args ')' | '(' or_expr ')'

Design:
    - AST nodes are frozen dataclasses; parse results are cached by source text, so the
      same tree is shared by validation and every row evaluation.
    - Columns are bare identifiers (dots allowed) or `back-quoted` for arbitrary names.

Usage:
    from spec_plotting.expressions import parse_expression, referenced_columns
"""

from __future__ import annotations
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterator, List, Optional, Tuple, Union
import re

from spec_plotting.errors import ParseError


# --------- AST ----------
@dataclass(frozen=True)
class ColumnRef:
    name: str


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: Tuple["Expression", ...]


@dataclass(frozen=True)
class BinaryOp:
    op: str  # = != < <= > >= + - * / AND OR
    left: "Expression"
    right: "Expression"


@dataclass(frozen=True)
class Not:
    operand: "Expression"


@dataclass(frozen=True)
class Negate:
    operand: "Expression"


@dataclass(frozen=True)
class InList:
    value: "Expression"
    options: Tuple["Expression", ...]
    negated: bool = False


@dataclass(frozen=True)
class Between:
    value: "Expression"
    low: "Expression"
    high: "Expression"
    negated: bool = False


@dataclass(frozen=True)
class Like:
    value: "Expression"
    pattern: "Expression"
    negated: bool = False


@dataclass(frozen=True)
class IsNull:
    value: "Expression"
    negated: bool = False


Expression = Union[ColumnRef, Literal, FunctionCall, BinaryOp, Not, Negate, InList, Between, Like, IsNull]

COMPARISON_OPS = ("=", "!=", "<", "<=", ">", ">=")
ARITHMETIC_OPS = ("+", "-", "*", "/")
_OP_ALIASES = {"==": "=", "<>": "!="}
_ARITH_PRECEDENCE = {"+": 1, "-": 1, "*": 2, "/": 2}
KEYWORDS = {"AND", "OR", "NOT", "IN", "BETWEEN", "LIKE", "IS", "NULL", "TRUE", "FALSE"}


# --------- tokenizer ----------
@dataclass(frozen=True)
class Token:
    kind: str  # number | string | ident | quoted | keyword | op | punct | eof
    value: str
    pos: int


_TOKEN_RE = re.compile(r"""
      (?P<ws>\s+)
    | (?P<number>\d+\.\d*|\.\d+|\d+)
    | (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*")
    | (?P<quoted>`[^`]+`)
    | (?P<ident>[A-Za-z_][A-Za-z0-9_.]*)
    | (?P<op>>=|<=|!=|<>|==|=|>|<|\+|-|\*|/)
    | (?P<punct>[(),])
""", re.VERBOSE)


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m:
            ch = text[pos]
            if ch in "'\"":
                raise ParseError("Unterminated string literal", text, pos)
            raise ParseError(f"Unexpected character {ch!r}", text, pos)
        kind = m.lastgroup
        raw = m.group()
        if kind == "ident" and raw.upper() in KEYWORDS:
            tokens.append(Token("keyword", raw.upper(), pos))
        elif kind == "string":
            quote = raw[0]
            tokens.append(Token("string", raw[1:-1].replace(quote * 2, quote), pos))
        elif kind == "quoted":
            tokens.append(Token("ident", raw[1:-1], pos))
        elif kind == "op":
            tokens.append(Token("op", _OP_ALIASES.get(raw, raw), pos))
        elif kind != "ws":
            tokens.append(Token(kind, raw, pos))
        pos = m.end()
    tokens.append(Token("eof", "", len(text)))
    return tokens


# --------- parser ----------
class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.i = 0

    def peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.i + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        tok = self.tokens[self.i]
        self.i += 1
        return tok

    def at_keyword(self, *words: str, offset: int = 0) -> bool:
        tok = self.peek(offset)
        return tok.kind == "keyword" and tok.value in words

    def at_punct(self, value: str) -> bool:
        tok = self.peek()
        return tok.kind == "punct" and tok.value == value

    def error(self, message: str, tok: Optional[Token] = None) -> ParseError:
        tok = tok or self.peek()
        return ParseError(message, self.text, tok.pos)

    def expect_punct(self, value: str) -> Token:
        if not self.at_punct(value):
            found = self.peek().value or "end of input"
            raise self.error(f"Expected '{value}' but found '{found}'")
        return self.advance()

    def expect_keyword(self, word: str) -> Token:
        if not self.at_keyword(word):
            found = self.peek().value or "end of input"
            raise self.error(f"Expected {word} but found '{found}'")
        return self.advance()

    def parse(self) -> Expression:
        if self.peek().kind == "eof":
            raise self.error("Empty expression")
        expr = self.parse_or()
        if self.peek().kind != "eof":
            raise self.error(f"Unexpected token '{self.peek().value}'")
        return expr

    def parse_or(self) -> Expression:
        left = self.parse_and()
        while self.at_keyword("OR"):
            self.advance()
            left = BinaryOp("OR", left, self.parse_and())
        return left

    def parse_and(self) -> Expression:
        left = self.parse_not()
        while self.at_keyword("AND"):
            self.advance()
            left = BinaryOp("AND", left, self.parse_not())
        return left

    def parse_not(self) -> Expression:
        if self.at_keyword("NOT"):
            self.advance()
            return Not(self.parse_not())
        return self.parse_predicate()

    def parse_predicate(self) -> Expression:
        left = self.parse_arith()
        tok = self.peek()
        if tok.kind == "op" and tok.value in COMPARISON_OPS:
            self.advance()
            return BinaryOp(tok.value, left, self.parse_arith())

        negated = False
        if self.at_keyword("NOT") and self.at_keyword("IN", "BETWEEN", "LIKE", offset=1):
            self.advance()
            negated = True

        if self.at_keyword("IN"):
            self.advance()
            self.expect_punct("(")
            options = [self.parse_arith()]
            while self.at_punct(","):
                self.advance()
                options.append(self.parse_arith())
            self.expect_punct(")")
            return InList(left, tuple(options), negated)
        if self.at_keyword("BETWEEN"):
            self.advance()
            low = self.parse_arith()
            self.expect_keyword("AND")
            return Between(left, low, self.parse_arith(), negated)
        if self.at_keyword("LIKE"):
            self.advance()
            return Like(left, self.parse_arith(), negated)
        if self.at_keyword("IS"):
            self.advance()
            is_not = False
            if self.at_keyword("NOT"):
                self.advance()
                is_not = True
            self.expect_keyword("NULL")
            return IsNull(left, is_not)
        return left

    def parse_arith(self, min_prec: int = 1) -> Expression:
        left = self.parse_unary()
        while True:
            tok = self.peek()
            prec = _ARITH_PRECEDENCE.get(tok.value) if tok.kind == "op" else None
            if prec is None or prec < min_prec:
                return left
            self.advance()
            left = BinaryOp(tok.value, left, self.parse_arith(prec + 1))

    def parse_unary(self) -> Expression:
        tok = self.peek()
        if tok.kind == "op" and tok.value == "-":
            self.advance()
            operand = self.parse_unary()
            if isinstance(operand, Literal) and isinstance(operand.value, (int, float)) \
                    and not isinstance(operand.value, bool):
                return Literal(-operand.value)
            return Negate(operand)
        if tok.kind == "op" and tok.value == "+":
            self.advance()
            return self.parse_unary()
        return self.parse_atom()

    def parse_atom(self) -> Expression:
        tok = self.peek()
        if tok.kind == "number":
            self.advance()
            return Literal(float(tok.value) if "." in tok.value else int(tok.value))
        if tok.kind == "string":
            self.advance()
            return Literal(tok.value)
        if tok.kind == "keyword":
            if tok.value in ("NULL", "TRUE", "FALSE"):
                self.advance()
                return Literal({"NULL": None, "TRUE": True, "FALSE": False}[tok.value])
            raise self.error(f"Unexpected keyword {tok.value}")
        if tok.kind == "ident":
            self.advance()
            if self.at_punct("("):
                return self.parse_call(tok)
            return ColumnRef(tok.value)
        if self.at_punct("("):
            self.advance()
            expr = self.parse_or()
            self.expect_punct(")")
            return expr
        if tok.kind == "eof":
            raise self.error("Unexpected end of expression")
        raise self.error(f"Unexpected token '{tok.value}'")

    def parse_call(self, name_tok: Token) -> Expression:
        self.expect_punct("(")
        args: List[Expression] = []
        if not self.at_punct(")"):
            args.append(self.parse_or())
            while self.at_punct(","):
                self.advance()
                args.append(self.parse_or())
        self.expect_punct(")")
        return FunctionCall(name_tok.value.lower(), tuple(args))


@lru_cache(maxsize=1024)
def _parse_cached(text: str) -> Expression:
    return _Parser(text).parse()


def parse_expression(text: str) -> Expression:
    """Parse derive/filter source text into an AST. Raises ParseError."""
    if not isinstance(text, str):
        raise ParseError(f"Expression must be a string, got {type(text).__name__}")
    return _parse_cached(text)


# --------- walkers ----------
def children(node: Expression) -> Tuple[Expression, ...]:
    if isinstance(node, FunctionCall):
        return node.args
    if isinstance(node, BinaryOp):
        return (node.left, node.right)
    if isinstance(node, (Not, Negate)):
        return (node.operand,)
    if isinstance(node, InList):
        return (node.value,) + node.options
    if isinstance(node, Between):
        return (node.value, node.low, node.high)
    if isinstance(node, Like):
        return (node.value, node.pattern)
    if isinstance(node, IsNull):
        return (node.value,)
    return ()


def walk(node: Expression) -> Iterator[Expression]:
    yield node
    for child in children(node):
        yield from walk(child)


def referenced_columns(node: Expression) -> List[str]:
    """Column names in first-appearance order, without duplicates."""
    seen: List[str] = []
    for n in walk(node):
        if isinstance(n, ColumnRef) and n.name not in seen:
            seen.append(n.name)
    return seen


def function_calls(node: Expression) -> List[FunctionCall]:
    return [n for n in walk(node) if isinstance(n, FunctionCall)]
