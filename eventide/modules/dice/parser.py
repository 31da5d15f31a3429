"""Dice formula evaluator — arithmetic, @variables, NdM with keep-highest/lowest."""

from __future__ import annotations

import math
import random
import re
from dataclasses import dataclass, field

from eventide.models.result import DieResult, RollOutcome

_TOKEN_PATTERN = re.compile(
    r"\s*(?:"
    r"(?P<dice>\d*d\d+(?:k[hl]?\d*)?)"  # NdM, dM, NdMkhK, NdMklK
    r"|(?P<num>\d+(?:\.\d+)?)"
    r"|(?P<var>@[A-Za-z_][\w.]*)"  # @abilities.acro.total
    r"|(?P<name>[A-Za-z_]\w*)"  # function names
    r"|(?P<op>[-+*/(),])"
    r")",
    re.IGNORECASE,
)

_DICE_PATTERN = re.compile(r"^(\d*)d(\d+)(?:(k[hl]?)(\d*))?$", re.IGNORECASE)

_KEEP_PATTERN = re.compile(r"(?<![\w@.])\d*d\d+(k[hl]?)", re.IGNORECASE)

_FUNCTIONS = {
    "min": min,
    "max": max,
    "floor": math.floor,
    "ceil": math.ceil,
    "abs": abs,
}


@dataclass
class DiceTerm:
    """One evaluated NdM term."""

    expression: str
    count: int
    sides: int
    faces: list[int] = field(default_factory=list)
    kept: list[int] = field(default_factory=list)  # indices into faces
    subtotal: int = 0


def _tokenize(formula: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    text = formula.rstrip()
    while pos < len(text):
        match = _TOKEN_PATTERN.match(text, pos)
        if match is None or match.end() == pos:
            raise ValueError(f"Invalid formula near {text[pos:]!r}: {formula}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


class _Evaluator:
    def __init__(self, formula: str, context: dict, rng) -> None:
        self.formula = formula
        self.tokens = _tokenize(formula)
        self.pos = 0
        self.context = context
        self.rng = rng
        self.terms: list[DiceTerm] = []

    # -- token helpers --

    def _peek(self) -> tuple[str, str] | None:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def _next(self) -> tuple[str, str]:
        token = self._peek()
        if token is None:
            raise ValueError(f"Unexpected end of formula: {self.formula}")
        self.pos += 1
        return token

    def _expect(self, op: str) -> None:
        kind, value = self._next()
        if kind != "op" or value != op:
            raise ValueError(f"Expected {op!r} but found {value!r}: {self.formula}")

    # -- grammar --

    def parse(self) -> float:
        if not self.tokens:
            raise ValueError("Empty formula")
        value = self._expr()
        if self._peek() is not None:
            raise ValueError(f"Unexpected {self._peek()[1]!r}: {self.formula}")
        return value

    def _expr(self) -> float:
        value = self._term()
        while (tok := self._peek()) and tok[0] == "op" and tok[1] in "+-":
            self.pos += 1
            rhs = self._term()
            value = value + rhs if tok[1] == "+" else value - rhs
        return value

    def _term(self) -> float:
        value = self._unary()
        while (tok := self._peek()) and tok[0] == "op" and tok[1] in "*/":
            self.pos += 1
            rhs = self._unary()
            if tok[1] == "*":
                value = value * rhs
            else:
                if rhs == 0:
                    raise ValueError(f"Division by zero: {self.formula}")
                value = value / rhs
        return value

    def _unary(self) -> float:
        tok = self._peek()
        if tok and tok[0] == "op" and tok[1] in "+-":
            self.pos += 1
            value = self._unary()
            return -value if tok[1] == "-" else value
        return self._primary()

    def _primary(self) -> float:
        kind, value = self._next()
        if kind == "num":
            return float(value) if "." in value else int(value)
        if kind == "dice":
            return self._roll(value)
        if kind == "var":
            return self._lookup(value[1:])
        if kind == "name":
            return self._call(value)
        if kind == "op" and value == "(":
            inner = self._expr()
            self._expect(")")
            return inner
        raise ValueError(f"Unexpected {value!r}: {self.formula}")

    def _call(self, name: str) -> float:
        func = _FUNCTIONS.get(name.lower())
        if func is None:
            raise ValueError(f"Unknown function: {name}")
        self._expect("(")
        args = [self._expr()]
        while (tok := self._peek()) and tok == ("op", ","):
            self.pos += 1
            args.append(self._expr())
        self._expect(")")
        if name.lower() in ("min", "max"):
            return func(args)
        if len(args) != 1:
            raise ValueError(f"{name}() takes exactly one argument")
        return func(args[0])

    def _lookup(self, path: str) -> float:
        node = self.context
        for part in path.split("."):
            if not isinstance(node, dict) or part not in node:
                raise ValueError(f"Unknown variable: @{path}")
            node = node[part]
        if isinstance(node, bool) or not isinstance(node, (int, float)):
            raise ValueError(f"Variable @{path} is not numeric")
        return node

    def _roll(self, expression: str) -> int:
        match = _DICE_PATTERN.match(expression)
        if match is None:
            raise ValueError(f"Invalid dice term: {expression}")
        count = int(match.group(1)) if match.group(1) else 1
        sides = int(match.group(2))
        if sides < 1:
            raise ValueError(f"Dice must have at least one side: {expression}")
        faces = [self.rng.randint(1, sides) for _ in range(count)]

        order = sorted(range(count), key=lambda i: faces[i])
        keep_mode = (match.group(3) or "").lower()
        if keep_mode:
            keep = int(match.group(4)) if match.group(4) else 1
            if keep > count:
                raise ValueError(f"Cannot keep {keep} dice from {count} rolls")
            kept = order[:keep] if keep_mode == "kl" else order[count - keep:]
        else:
            kept = list(range(count))

        term = DiceTerm(
            expression=expression,
            count=count,
            sides=sides,
            faces=faces,
            kept=sorted(kept),
            subtotal=sum(faces[i] for i in kept),
        )
        self.terms.append(term)
        return term.subtotal


def evaluate_formula(
    formula: str,
    context: dict | None = None,
    rng: random.Random | None = None,
) -> RollOutcome:
    """Evaluate a dice/arithmetic formula into a RollOutcome.

    Supported syntax:
        2d20kl, 4d6kh3, d8   - dice with optional keep-lowest/highest
        @abilities.acro.total - variable lookup in ``context``
        + - * / ( )          - arithmetic, unary minus
        min(), max(), floor(), ceil(), abs()

    ``die_results`` holds the faces of the first dice term, with the faces
    dropped by a keep modifier flagged ``discarded``.

    Raises:
        ValueError: If the formula is malformed or refers to unknown names.
    """
    if formula is None or not str(formula).strip():
        raise ValueError("Empty formula")
    evaluator = _Evaluator(str(formula), context or {}, rng or random)
    total = evaluator.parse()
    if isinstance(total, float) and total.is_integer():
        total = int(total)

    die_results: list[DieResult] = []
    if evaluator.terms:
        first = evaluator.terms[0]
        die_results = [
            DieResult(face=face, discarded=i not in first.kept)
            for i, face in enumerate(first.faces)
        ]
    return RollOutcome(total=total, die_results=die_results, formula=str(formula))


def keep_modes(formula: str) -> tuple[bool, bool]:
    """Return ``(keeps_lowest, keeps_highest)`` for the dice terms of a formula."""
    modes = [m.lower() for m in _KEEP_PATTERN.findall(formula or "")]
    keeps_lowest = "kl" in modes
    keeps_highest = not keeps_lowest and any(m in ("k", "kh") for m in modes)
    return keeps_lowest, keeps_highest
