"""
Lexer for the expression language.

Supported syntax:
- References: {{http1.result.status}}
- Bare paths: vars.count, value.items[0]
- Literals: 42, 3.5, "text", 'text', true, false, null
- Operators: == === != !== > >= < <= && || ! + - * / % ~
- Word operators: and, or, not
- Calls and lists: UPPER(value), [1, 2, 3]
"""

from enum import Enum
from dataclasses import dataclass
from typing import List

from flowbuilder.expressions.errors import LexerError


class TokenType(Enum):
    """Token types for the expression lexer."""
    # Literals
    STRING = 'STRING'
    NUMBER = 'NUMBER'
    IDENTIFIER = 'IDENTIFIER'
    REFERENCE = 'REFERENCE'     # {{path}}
    TRUE = 'TRUE'
    FALSE = 'FALSE'
    NULL = 'NULL'

    # Delimiters
    DOT = 'DOT'
    COMMA = 'COMMA'
    LPAREN = 'LPAREN'
    RPAREN = 'RPAREN'
    LBRACKET = 'LBRACKET'
    RBRACKET = 'RBRACKET'

    # Comparison
    EQUALS_EQUALS = 'EQUALS_EQUALS'
    STRICT_EQUALS = 'STRICT_EQUALS'
    NOT_EQUALS = 'NOT_EQUALS'
    STRICT_NOT_EQUALS = 'STRICT_NOT_EQUALS'
    GT = 'GT'
    GTE = 'GTE'
    LT = 'LT'
    LTE = 'LTE'
    CONTAINS = 'CONTAINS'

    # Logical
    AND = 'AND'
    OR = 'OR'
    NOT = 'NOT'

    # Math
    PLUS = 'PLUS'
    MINUS = 'MINUS'
    MULTIPLY = 'MULTIPLY'
    DIVIDE = 'DIVIDE'
    MODULO = 'MODULO'

    EOF = 'EOF'


@dataclass
class Token:
    """A token produced by the lexer."""
    type: TokenType
    value: str
    position: int

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r}, pos={self.position})"


class Lexer:
    """
    Tokenizer for expressions.

    Operators are matched longest first so ``===`` never lexes as ``==``
    followed by ``=``.
    """

    OPERATORS = [
        ('===', TokenType.STRICT_EQUALS),
        ('!==', TokenType.STRICT_NOT_EQUALS),
        ('==', TokenType.EQUALS_EQUALS),
        ('!=', TokenType.NOT_EQUALS),
        ('>=', TokenType.GTE),
        ('<=', TokenType.LTE),
        ('&&', TokenType.AND),
        ('||', TokenType.OR),
        ('>', TokenType.GT),
        ('<', TokenType.LT),
        ('!', TokenType.NOT),
        ('~', TokenType.CONTAINS),
        ('+', TokenType.PLUS),
        ('-', TokenType.MINUS),
        ('*', TokenType.MULTIPLY),
        ('/', TokenType.DIVIDE),
        ('%', TokenType.MODULO),
        ('.', TokenType.DOT),
        (',', TokenType.COMMA),
        ('(', TokenType.LPAREN),
        (')', TokenType.RPAREN),
        ('[', TokenType.LBRACKET),
        (']', TokenType.RBRACKET),
    ]

    KEYWORDS = {
        'true': TokenType.TRUE,
        'false': TokenType.FALSE,
        'null': TokenType.NULL,
        'none': TokenType.NULL,
        'undefined': TokenType.NULL,
        'and': TokenType.AND,
        'or': TokenType.OR,
        'not': TokenType.NOT,
    }

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.tokens: List[Token] = []

    def tokenize(self) -> List[Token]:
        """
        Tokenize the entire expression.

        Returns:
            List of tokens ending with EOF
        """
        self.tokens = []
        self.pos = 0

        while True:
            self._skip_whitespace()
            if self.pos >= len(self.text):
                break

            char = self.text[self.pos]

            if self._peek(2) == '{{':
                self._read_reference()
            elif char == '"' or char == "'":
                self._read_string(char)
            elif char.isdigit():
                self._read_number()
            elif char.isalpha() or char in '_$':
                self._read_identifier()
            else:
                self._read_operator()

        self.tokens.append(Token(TokenType.EOF, '', self.pos))
        return self.tokens

    def _read_operator(self):
        for symbol, token_type in self.OPERATORS:
            if self.text.startswith(symbol, self.pos):
                self.tokens.append(Token(token_type, symbol, self.pos))
                self.pos += len(symbol)
                return
        raise LexerError(f"Unexpected character: {self.text[self.pos]!r}", self.pos)

    def _read_reference(self):
        """Read a {{path}} reference as a single token."""
        start = self.pos
        end = self.text.find('}}', start + 2)
        if end == -1:
            raise LexerError("Unclosed reference", start)

        path = self.text[start + 2:end].strip()
        if not path:
            raise LexerError("Empty reference", start)

        self.tokens.append(Token(TokenType.REFERENCE, path, start))
        self.pos = end + 2

    def _read_string(self, quote_char: str):
        """Read a string literal."""
        start = self.pos
        self.pos += 1
        chars = []

        while self.pos < len(self.text):
            char = self.text[self.pos]

            if char == quote_char:
                self.pos += 1
                self.tokens.append(Token(TokenType.STRING, ''.join(chars), start))
                return

            if char == '\\' and self.pos + 1 < len(self.text):
                escaped = self.text[self.pos + 1]
                chars.append({'n': '\n', 't': '\t', 'r': '\r'}.get(escaped, escaped))
                self.pos += 2
            else:
                chars.append(char)
                self.pos += 1

        raise LexerError("Unterminated string", start)

    def _read_number(self):
        """Read a number literal (int or float)."""
        start = self.pos
        has_dot = False

        while self.pos < len(self.text):
            char = self.text[self.pos]
            if char.isdigit():
                self.pos += 1
            elif char == '.' and not has_dot and self._is_digit_at(self.pos + 1):
                has_dot = True
                self.pos += 1
            else:
                break

        self.tokens.append(Token(TokenType.NUMBER, self.text[start:self.pos], start))

    def _read_identifier(self):
        """Read an identifier or keyword."""
        start = self.pos

        while self.pos < len(self.text):
            char = self.text[self.pos]
            if char.isalnum() or char in '_$':
                self.pos += 1
            else:
                break

        value = self.text[start:self.pos]
        token_type = self.KEYWORDS.get(value.lower(), TokenType.IDENTIFIER)
        self.tokens.append(Token(token_type, value, start))

    def _is_digit_at(self, index: int) -> bool:
        return index < len(self.text) and self.text[index].isdigit()

    def _peek(self, count: int = 1) -> str:
        """Peek ahead without advancing."""
        return self.text[self.pos:self.pos + count]

    def _skip_whitespace(self):
        while self.pos < len(self.text) and self.text[self.pos] in ' \t\n\r':
            self.pos += 1
