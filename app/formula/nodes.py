"""Syntax tree produced by :mod:`app.formula.parser`.

Nodes are frozen dataclasses: two parses of the same source compare equal
with ``==`` and a tree can be shared between evaluations without copying.
"""

from dataclasses import dataclass
from typing import Any, Iterator, Tuple, Union


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Identifier:
    """A field reference such as ``lead.city`` or ``[First Name]``."""

    name: str

    @property
    def path(self) -> Tuple[str, ...]:
        return tuple(self.name.split("."))


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: Tuple["Node", ...] = ()


@dataclass(frozen=True)
class Conditional:
    condition: "Node"
    then_branch: "Node"
    else_branch: "Node"


Node = Union[Literal, Identifier, BinaryOp, UnaryOp, FunctionCall, Conditional]


def walk(node: Node) -> Iterator[Node]:
    """Yield *node* and every descendant, depth-first, parents first."""
    yield node
    if isinstance(node, BinaryOp):
        yield from walk(node.left)
        yield from walk(node.right)
    elif isinstance(node, UnaryOp):
        yield from walk(node.operand)
    elif isinstance(node, FunctionCall):
        for arg in node.args:
            yield from walk(arg)
    elif isinstance(node, Conditional):
        yield from walk(node.condition)
        yield from walk(node.then_branch)
        yield from walk(node.else_branch)
