"""
Abstract Syntax Tree (AST) nodes for the expression language.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Union


class ComparisonOp(Enum):
    """Comparison operators."""
    EQ = '=='
    STRICT_EQ = '==='
    NE = '!='
    STRICT_NE = '!=='
    GT = '>'
    GTE = '>='
    LT = '<'
    LTE = '<='
    CONTAINS = '~'


class LogicalOp(Enum):
    """Logical operators for combining conditions."""
    AND = '&&'
    OR = '||'


class MathOp(Enum):
    """Mathematical operators."""
    ADD = '+'
    SUB = '-'
    MUL = '*'
    DIV = '/'
    MOD = '%'


@dataclass
class ExprNode:
    """Base class for all AST nodes."""
    position: int = 0

    def accept(self, visitor):
        """Accept a visitor (for visitor pattern)."""
        method_name = f'visit_{self.__class__.__name__}'
        method = getattr(visitor, method_name, visitor.generic_visit)
        return method(self)


@dataclass
class LiteralNode(ExprNode):
    """A number, string, boolean or null literal."""
    value: Any = None


@dataclass
class ArrayNode(ExprNode):
    """A list literal: [1, 2, value]"""
    elements: List[ExprNode] = field(default_factory=list)


@dataclass
class VariableNode(ExprNode):
    """
    A variable reference.

    Example: ``{{http1.result.data}}.length`` or ``vars.count``

    Attributes:
        segments: Path segments ['http1', 'result', 'data', 'length']
    """
    segments: List[Union[str, int]] = field(default_factory=list)

    @property
    def root(self) -> str:
        return str(self.segments[0]) if self.segments else ''


@dataclass
class BinaryOpNode(ExprNode):
    """Arithmetic or comparison between two operands."""
    left: ExprNode = None
    operator: Union[MathOp, ComparisonOp] = None
    right: ExprNode = None


@dataclass
class LogicalOpNode(ExprNode):
    """Short-circuit AND / OR."""
    left: ExprNode = None
    operator: LogicalOp = None
    right: ExprNode = None


@dataclass
class UnaryOpNode(ExprNode):
    """Negation (``-``) or logical not (``!``)."""
    operator: str = ''
    operand: ExprNode = None


@dataclass
class FunctionCallNode(ExprNode):
    """
    A whitelisted function call.

    Example: ``ROUND(value * 1.1, 2)``
    """
    name: str = ''
    arguments: List[ExprNode] = field(default_factory=list)
