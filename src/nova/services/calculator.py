"""
Local arithmetic fast-path

Turns spoken arithmetic ("what is 5 plus 10", "20% of 400",
"square root of 16") into a restricted expression and evaluates it with a
small recursive-descent parser. Nothing is ever handed to eval().

Grammar (lowest to highest precedence):

    expr   := term (('+' | '-') term)*
    term   := unary (('*' | '/' | '%') unary)*
    unary  := ('+' | '-') unary | 'sqrt' unary | power
    power  := atom ('**' unary)?
    atom   := NUMBER | '(' expr ')'
"""

import math
import re
from typing import Optional, Union

import structlog

logger = structlog.get_logger()

Number = Union[int, float]

# Order matters: longer phrases must be replaced before their prefixes
_FILLER_PHRASES = re.compile(r"what is|calculate|find|result of|solve")

_REPLACEMENTS = [
    (re.compile(r"plus"), "+"),
    (re.compile(r"minus"), "-"),
    (re.compile(r"multiplied by|times|into|multiply"), "*"),
    (re.compile(r"divided by|divide|over"), "/"),
    (re.compile(r"to the power of|power of"), "**"),
    (re.compile(r"square root of"), "sqrt"),
    (re.compile(r"% of"), "*0.01*"),
]

_ALLOWED = re.compile(r"^(?:[0-9+\-*/().%\s]|sqrt)+$")

_TOKEN = re.compile(r"\s*(?:(\d+(?:\.\d*)?|\.\d+)|(\*\*|sqrt|[+\-*/%()]))")

ROUND_DIGITS = 4

# Deepest chain of unary operators, powers or parentheses the parser accepts
MAX_NESTING = 50


class MathSyntaxError(ValueError):
    """Expression does not match the arithmetic grammar"""


def normalize_expression(command: str) -> str:
    """Map spoken operators onto the restricted arithmetic grammar"""
    expr = command.lower().strip().rstrip("?").strip()
    expr = _FILLER_PHRASES.sub("", expr)
    for pattern, replacement in _REPLACEMENTS:
        expr = pattern.sub(replacement, expr)
    return expr.strip()


def tokenize(expr: str) -> list[str]:
    """Split a normalized expression into tokens"""
    tokens = []
    pos = 0
    expr = expr.rstrip()
    while pos < len(expr):
        match = _TOKEN.match(expr, pos)
        if not match:
            raise MathSyntaxError(f"unexpected character at {pos}: {expr[pos]!r}")
        tokens.append(match.group(1) or match.group(2))
        pos = match.end()
    return tokens


class _Parser:
    """Recursive-descent evaluator over a token list"""

    def __init__(self, tokens: list[str]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> str:
        token = self.peek()
        if token is None:
            raise MathSyntaxError("unexpected end of expression")
        self.pos += 1
        return token

    def parse(self) -> float:
        if not self.tokens:
            raise MathSyntaxError("empty expression")
        value = self.expr()
        if self.peek() is not None:
            raise MathSyntaxError(f"unexpected token {self.peek()!r}")
        return value

    def expr(self) -> float:
        value = self.term()
        while self.peek() in ("+", "-"):
            if self.take() == "+":
                value = value + self.term()
            else:
                value = value - self.term()
        return value

    def term(self) -> float:
        value = self.unary()
        while self.peek() in ("*", "/", "%"):
            op = self.take()
            rhs = self.unary()
            if op == "*":
                value = value * rhs
            elif op == "/":
                value = value / rhs
            else:
                value = math.fmod(value, rhs)
        return value

    def unary(self) -> float:
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise MathSyntaxError("expression nested too deeply")
        try:
            return self._unary()
        finally:
            self.depth -= 1

    def _unary(self) -> float:
        token = self.peek()
        if token == "-":
            self.take()
            return -self.unary()
        if token == "+":
            self.take()
            return self.unary()
        if token == "sqrt":
            self.take()
            return math.sqrt(self.unary())
        return self.power()

    def power(self) -> float:
        base = self.atom()
        if self.peek() == "**":
            self.take()
            return math.pow(base, self.unary())
        return base

    def atom(self) -> float:
        token = self.take()
        if token == "(":
            value = self.expr()
            if self.take() != ")":
                raise MathSyntaxError("missing closing parenthesis")
            return value
        try:
            return float(token)
        except ValueError:
            raise MathSyntaxError(f"expected a number, got {token!r}") from None


def evaluate_expression(expr: str) -> float:
    """
    Evaluate an expression in the restricted grammar

    Raises:
        MathSyntaxError: Expression outside the grammar
        ArithmeticError: Division by zero, overflow
        ValueError: Math domain error (square root of a negative)
    """
    return _Parser(tokenize(expr)).parse()


def evaluate_math(command: str) -> Optional[Number]:
    """
    Try to answer a spoken arithmetic question locally

    Args:
        command: Raw user utterance

    Returns:
        Result rounded to 4 decimals (an int when integral), or None when
        the command is not an arithmetic question
    """
    expr = normalize_expression(command)
    if not expr or not _ALLOWED.match(expr):
        return None

    try:
        result = evaluate_expression(expr)
    except (ArithmeticError, ValueError) as e:
        logger.debug("calculator.miss", expression=expr, reason=str(e))
        return None

    if not math.isfinite(result):
        return None

    rounded = round(result, ROUND_DIGITS)
    if rounded == int(rounded):
        return int(rounded)
    return rounded
