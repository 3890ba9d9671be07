"""
Recursive descent parser for the expression language.

Precedence, lowest first:
    ||  &&  comparison  + -  * / %  unary (- !)  primary
"""

from typing import List

from flowbuilder.expressions.errors import ParseError, PathSyntaxError
from flowbuilder.expressions.lexer import Lexer, Token, TokenType
from flowbuilder.expressions.paths import parse_path
from flowbuilder.expressions.ast import (
    ExprNode,
    LiteralNode,
    ArrayNode,
    VariableNode,
    BinaryOpNode,
    LogicalOpNode,
    UnaryOpNode,
    FunctionCallNode,
    MathOp,
    ComparisonOp,
    LogicalOp,
)


class ExpressionParser:
    """Converts an expression string into an AST."""

    MATH_OPS = {
        TokenType.PLUS: MathOp.ADD,
        TokenType.MINUS: MathOp.SUB,
        TokenType.MULTIPLY: MathOp.MUL,
        TokenType.DIVIDE: MathOp.DIV,
        TokenType.MODULO: MathOp.MOD,
    }

    COMPARISON_OPS = {
        TokenType.EQUALS_EQUALS: ComparisonOp.EQ,
        TokenType.STRICT_EQUALS: ComparisonOp.STRICT_EQ,
        TokenType.NOT_EQUALS: ComparisonOp.NE,
        TokenType.STRICT_NOT_EQUALS: ComparisonOp.STRICT_NE,
        TokenType.GT: ComparisonOp.GT,
        TokenType.GTE: ComparisonOp.GTE,
        TokenType.LT: ComparisonOp.LT,
        TokenType.LTE: ComparisonOp.LTE,
        TokenType.CONTAINS: ComparisonOp.CONTAINS,
    }

    # Keywords are still valid as member names: vars.true, item.null
    MEMBER_TOKENS = (
        TokenType.IDENTIFIER,
        TokenType.TRUE,
        TokenType.FALSE,
        TokenType.NULL,
        TokenType.AND,
        TokenType.OR,
        TokenType.NOT,
    )

    def __init__(self):
        self.tokens: List[Token] = []
        self.pos = 0

    def parse(self, text: str) -> ExprNode:
        """
        Parse an expression.

        Args:
            text: Expression source

        Returns:
            Root AST node

        Raises:
            LexerError, ParseError: On malformed input
        """
        if not isinstance(text, str) or not text.strip():
            raise ParseError("Empty expression")

        self.tokens = Lexer(text).tokenize()
        self.pos = 0

        node = self._parse_logical_or()

        if not self._is_at_end():
            token = self._current()
            raise ParseError(f"Unexpected token {token.value!r}", token.position)

        return node

    def _parse_logical_or(self) -> ExprNode:
        left = self._parse_logical_and()

        while self._check(TokenType.OR):
            token = self._advance()
            right = self._parse_logical_and()
            left = LogicalOpNode(left=left, operator=LogicalOp.OR, right=right, position=token.position)

        return left

    def _parse_logical_and(self) -> ExprNode:
        left = self._parse_comparison()

        while self._check(TokenType.AND):
            token = self._advance()
            right = self._parse_comparison()
            left = LogicalOpNode(left=left, operator=LogicalOp.AND, right=right, position=token.position)

        return left

    def _parse_comparison(self) -> ExprNode:
        left = self._parse_additive()

        if self._current().type in self.COMPARISON_OPS:
            token = self._advance()
            right = self._parse_additive()
            return BinaryOpNode(
                left=left,
                operator=self.COMPARISON_OPS[token.type],
                right=right,
                position=token.position
            )

        return left

    def _parse_additive(self) -> ExprNode:
        left = self._parse_multiplicative()

        while self._current().type in (TokenType.PLUS, TokenType.MINUS):
            token = self._advance()
            right = self._parse_multiplicative()
            left = BinaryOpNode(left=left, operator=self.MATH_OPS[token.type], right=right, position=token.position)

        return left

    def _parse_multiplicative(self) -> ExprNode:
        left = self._parse_unary()

        while self._current().type in (TokenType.MULTIPLY, TokenType.DIVIDE, TokenType.MODULO):
            token = self._advance()
            right = self._parse_unary()
            left = BinaryOpNode(left=left, operator=self.MATH_OPS[token.type], right=right, position=token.position)

        return left

    def _parse_unary(self) -> ExprNode:
        if self._check(TokenType.MINUS):
            token = self._advance()
            return UnaryOpNode(operator='-', operand=self._parse_unary(), position=token.position)

        if self._check(TokenType.NOT):
            token = self._advance()
            return UnaryOpNode(operator='!', operand=self._parse_unary(), position=token.position)

        return self._parse_primary()

    def _parse_primary(self) -> ExprNode:
        """Literals, references, paths, calls, lists and parentheses."""
        token = self._current()

        if token.type == TokenType.NUMBER:
            self._advance()
            value = float(token.value) if '.' in token.value else int(token.value)
            return LiteralNode(value=value, position=token.position)

        if token.type == TokenType.STRING:
            self._advance()
            return LiteralNode(value=token.value, position=token.position)

        if token.type in (TokenType.TRUE, TokenType.FALSE):
            self._advance()
            return LiteralNode(value=token.type == TokenType.TRUE, position=token.position)

        if token.type == TokenType.NULL:
            self._advance()
            return LiteralNode(value=None, position=token.position)

        if token.type == TokenType.REFERENCE:
            self._advance()
            try:
                segments = parse_path(token.value)
            except PathSyntaxError as e:
                raise ParseError(str(e), token.position)
            return self._parse_member_access(VariableNode(segments=segments, position=token.position))

        if token.type == TokenType.IDENTIFIER:
            if self._peek_type() == TokenType.LPAREN:
                return self._parse_function_call()
            self._advance()
            node = VariableNode(segments=[token.value], position=token.position)
            return self._parse_member_access(node)

        if token.type == TokenType.LBRACKET:
            return self._parse_array()

        if token.type == TokenType.LPAREN:
            self._advance()
            expr = self._parse_logical_or()
            self._expect(TokenType.RPAREN)
            return expr

        if token.type == TokenType.EOF:
            raise ParseError("Unexpected end of expression", token.position)

        raise ParseError(f"Unexpected token {token.value!r}", token.position)

    def _parse_member_access(self, node: VariableNode) -> VariableNode:
        """Extend a variable path with .name, [index] and ["key"] accessors."""
        while True:
            if self._check(TokenType.DOT):
                self._advance()
                token = self._current()
                if token.type not in self.MEMBER_TOKENS:
                    raise ParseError("Expected property name after '.'", token.position)
                self._advance()
                node.segments.append(token.value)
            elif self._check(TokenType.LBRACKET):
                self._advance()
                token = self._current()
                if token.type == TokenType.NUMBER and '.' not in token.value:
                    node.segments.append(int(token.value))
                elif token.type == TokenType.STRING:
                    node.segments.append(token.value)
                else:
                    raise ParseError("Expected index or quoted key inside []", token.position)
                self._advance()
                self._expect(TokenType.RBRACKET)
            else:
                return node

    def _parse_function_call(self) -> FunctionCallNode:
        """Parse a function call: NAME(arg1, arg2, ...)"""
        name_token = self._expect(TokenType.IDENTIFIER)
        self._expect(TokenType.LPAREN)

        arguments = []

        if not self._check(TokenType.RPAREN):
            arguments.append(self._parse_logical_or())

            while self._check(TokenType.COMMA):
                self._advance()
                arguments.append(self._parse_logical_or())

        self._expect(TokenType.RPAREN)

        return FunctionCallNode(
            name=name_token.value.upper(),
            arguments=arguments,
            position=name_token.position
        )

    def _parse_array(self) -> ArrayNode:
        start = self._expect(TokenType.LBRACKET)
        elements = []

        if not self._check(TokenType.RBRACKET):
            elements.append(self._parse_logical_or())
            while self._check(TokenType.COMMA):
                self._advance()
                elements.append(self._parse_logical_or())

        self._expect(TokenType.RBRACKET)
        return ArrayNode(elements=elements, position=start.position)

    # Helper methods

    def _current(self) -> Token:
        if self.pos >= len(self.tokens):
            return Token(TokenType.EOF, '', len(self.tokens))
        return self.tokens[self.pos]

    def _peek_type(self) -> TokenType:
        if self.pos + 1 < len(self.tokens):
            return self.tokens[self.pos + 1].type
        return TokenType.EOF

    def _advance(self) -> Token:
        """Advance and return previous token."""
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _check(self, token_type: TokenType) -> bool:
        return self._current().type == token_type

    def _expect(self, token_type: TokenType) -> Token:
        token = self._current()
        if token.type != token_type:
            raise ParseError(f"Expected {token_type.name}, got {token.type.name}", token.position)
        return self._advance()

    def _is_at_end(self) -> bool:
        return self._current().type == TokenType.EOF
