"""Syntax tree nodes of the B+ language."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional


@dataclass(frozen=True)
class Expr:
    """Base class of every expression and statement node."""


@dataclass(frozen=True)
class NumberExpr(Expr):
    """A numeric literal."""

    value: float


@dataclass(frozen=True)
class VariableExpr(Expr):
    """A reference to a named local variable or parameter."""

    name: str


@dataclass(frozen=True)
class BinaryExpr(Expr):
    """An arithmetic operation on two operands."""

    op: str
    lhs: Expr
    rhs: Expr


@dataclass(frozen=True)
class StringLiteralExpr(Expr):
    """A string literal, already unescaped."""

    value: str


@dataclass(frozen=True)
class Block(Expr):
    """A sequence of statements."""

    statements: tuple[Expr, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "statements", tuple(self.statements))

    def __iter__(self) -> Iterator[Expr]:
        return iter(self.statements)

    def __len__(self) -> int:
        return len(self.statements)


@dataclass(frozen=True)
class Function:
    """A function definition."""

    name: str
    ret_type: str
    arg_types: tuple[str, ...]
    body: Block

    def __post_init__(self) -> None:
        object.__setattr__(self, "arg_types", tuple(self.arg_types))


@dataclass(frozen=True)
class CallExpr(Expr):
    """A call of a declared or defined function."""

    callee: str
    args: tuple[Expr, ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))


@dataclass(frozen=True)
class Extern:
    """A declaration of an externally defined function."""

    name: str
    ret_type: str
    arg_types: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "arg_types", tuple(self.arg_types))


@dataclass(frozen=True)
class ReturnExpr(Expr):
    """A return statement with an optional value."""

    expr: Optional[Expr] = None


@dataclass(frozen=True)
class PositionalParamExpr(Expr):
    """A reference to a function parameter by its 1-based position."""

    index: int


@dataclass(frozen=True)
class VarDeclExpr(Expr):
    """A local variable declaration with an optional initializer."""

    name: str
    type_name: str
    init: Optional[Expr] = None