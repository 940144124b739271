"""Tokenizer for SQL Server DDL scripts.

Comments are dropped here, so the parser never sees them. Offsets are kept on
every token so callers can slice the original text back out (DEFAULT
expressions, skipped regions).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import List


class TokenType(Enum):
    WORD = auto()
    IDENTIFIER = auto()  # [bracketed] or "quoted"; never a keyword
    STRING = auto()
    NUMBER = auto()
    LPAREN = auto()
    RPAREN = auto()
    COMMA = auto()
    PERIOD = auto()
    SEMICOLON = auto()
    OPERATOR = auto()
    EOF = auto()


PUNCTUATION = {
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ",": TokenType.COMMA,
    ".": TokenType.PERIOD,
    ";": TokenType.SEMICOLON,
}


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    line: int
    start: int
    end: int

    def is_word(self, *words: str) -> bool:
        return self.type == TokenType.WORD and self.value.upper() in words

    @property
    def is_name(self) -> bool:
        return self.type in (TokenType.WORD, TokenType.IDENTIFIER)


class Tokenizer:
    def __init__(self, source: str) -> None:
        self.source = source
        self.position = 0
        self.line = 1

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        source = self.source
        while self.position < len(source):
            current = source[self.position]

            if current == "\n":
                self.line += 1
                self.position += 1
                continue

            if current.isspace():
                self.position += 1
                continue

            if source.startswith("--", self.position):
                self._skip_line_comment()
                continue

            if source.startswith("/*", self.position):
                self._skip_block_comment()
                continue

            if current in PUNCTUATION:
                tokens.append(self._token(PUNCTUATION[current], current, self.position + 1))
                continue

            if current == "[":
                tokens.append(self._consume_delimited("]", TokenType.IDENTIFIER))
                continue

            if current == '"':
                tokens.append(self._consume_delimited('"', TokenType.IDENTIFIER))
                continue

            if current == "'":
                tokens.append(self._consume_delimited("'", TokenType.STRING))
                continue

            if current in "Nn" and source.startswith("'", self.position + 1):
                start = self.position
                self.position += 1
                literal = self._consume_delimited("'", TokenType.STRING)
                tokens.append(Token(TokenType.STRING, literal.value, literal.line, start, literal.end))
                continue

            if current.isdigit():
                tokens.append(self._consume_number())
                continue

            if current.isalpha() or current in "_@#":
                tokens.append(self._consume_word())
                continue

            tokens.append(self._token(TokenType.OPERATOR, current, self.position + 1))

        tokens.append(Token(TokenType.EOF, "", self.line, len(source), len(source)))
        return tokens

    def _token(self, token_type: TokenType, value: str, end: int) -> Token:
        token = Token(token_type, value, self.line, self.position, end)
        self.position = end
        return token

    def _skip_line_comment(self) -> None:
        end = self.source.find("\n", self.position)
        self.position = len(self.source) if end == -1 else end

    def _skip_block_comment(self) -> None:
        end = self.source.find("*/", self.position + 2)
        stop = len(self.source) if end == -1 else end + 2
        self.line += self.source.count("\n", self.position, stop)
        self.position = stop

    def _consume_delimited(self, closing: str, token_type: TokenType) -> Token:
        # A doubled closing character is an escaped literal one: 'it''s', [a]]b].
        start = self.position
        line = self.line
        self.position += 1
        chars: List[str] = []
        while self.position < len(self.source):
            char = self.source[self.position]
            if char == closing:
                if self.source.startswith(closing * 2, self.position):
                    chars.append(closing)
                    self.position += 2
                    continue
                self.position += 1
                return Token(token_type, "".join(chars), line, start, self.position)
            if char == "\n":
                self.line += 1
            chars.append(char)
            self.position += 1
        # Unterminated: keep what was read so the parser can skip it.
        return Token(token_type, "".join(chars), line, start, self.position)

    def _consume_number(self) -> Token:
        start = self.position
        while self.position < len(self.source) and (
            self.source[self.position].isdigit() or self.source[self.position] == "."
        ):
            self.position += 1
        return Token(TokenType.NUMBER, self.source[start : self.position], self.line, start, self.position)

    def _consume_word(self) -> Token:
        start = self.position
        while self.position < len(self.source) and (
            self.source[self.position].isalnum() or self.source[self.position] in "_@#$"
        ):
            self.position += 1
        return Token(TokenType.WORD, self.source[start : self.position], self.line, start, self.position)


def tokenize(source: str) -> List[Token]:
    return Tokenizer(source).tokenize()
