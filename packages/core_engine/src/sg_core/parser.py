"""Recursive-descent parser for the SQL Server DDL subset.

Recognized: CREATE SCHEMA, CREATE TABLE, CREATE INDEX, ALTER TABLE ... ADD
CONSTRAINT, IF [NOT] EXISTS guards (discarded) and EXEC('...') dynamic
statements. Anything else becomes a :class:`~sg_core.statements.Skipped`
entry instead of an exception.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Union

from sg_core.statements import (
    AlterTableAddConstraint,
    ColumnDef,
    CreateIndex,
    CreateSchema,
    CreateTable,
    ForeignKeyClause,
    ForeignKeyConstraint,
    IgnoredConstraint,
    KeyConstraint,
    QualifiedName,
    Script,
    Skipped,
    TableConstraint,
)
from sg_core.tokenizer import Token, TokenType, tokenize

logger = logging.getLogger(__name__)

# A skipped region never runs past one of these words at nesting depth 0.
BOUNDARY_WORDS = ("CREATE", "ALTER", "IF", "ELSE", "EXEC", "EXECUTE", "USE", "GO", "BEGIN", "END")
# Consumed without a diagnostic: they carry no schema structure.
BENIGN_WORDS = ("SET", "PRINT", "DECLARE", "COMMIT", "ROLLBACK")
CONSTRAINT_WORDS = ("PRIMARY", "UNIQUE", "FOREIGN", "CHECK", "DEFAULT", "INDEX")


class ParseError(Exception):
    def __init__(self, message: str, token: Token) -> None:
        super().__init__(f"{message} at line {token.line} (got '{token.value}')")
        self.token = token


class _Cursor:
    def __init__(self, tokens: List[Token], source: str) -> None:
        self.tokens = tokens
        self.source = source
        self.index = 0

    # Utility helpers ----------------------------------------------------- #

    def peek(self, offset: int = 0) -> Token:
        position = min(self.index + offset, len(self.tokens) - 1)
        return self.tokens[position]

    def previous(self) -> Token:
        return self.tokens[max(self.index - 1, 0)]

    def advance(self) -> Token:
        token = self.peek()
        if token.type != TokenType.EOF:
            self.index += 1
        return token

    def at_end(self) -> bool:
        return self.peek().type == TokenType.EOF

    def match(self, token_type: TokenType) -> bool:
        if self.peek().type == token_type:
            self.advance()
            return True
        return False

    def expect(self, token_type: TokenType) -> Token:
        token = self.peek()
        if token.type != token_type:
            raise ParseError(f"Expected {token_type.name}", token)
        return self.advance()

    def match_word(self, *words: str) -> bool:
        if self.peek().is_word(*words):
            self.advance()
            return True
        return False

    def expect_word(self, word: str) -> None:
        if not self.match_word(word):
            raise ParseError(f"Expected {word}", self.peek())

    def name(self) -> str:
        token = self.peek()
        if not token.is_name:
            raise ParseError("Expected identifier", token)
        self.advance()
        return token.value

    def qualified_name(self) -> QualifiedName:
        parts = [self.name()]
        while self.match(TokenType.PERIOD):
            parts.append(self.name())
        schema = parts[-2] if len(parts) >= 2 else None
        return QualifiedName(schema=schema, name=parts[-1])

    def name_list(self) -> List[str]:
        self.expect(TokenType.LPAREN)
        names = [self.name()]
        self.match_word("ASC", "DESC")
        while self.match(TokenType.COMMA):
            names.append(self.name())
            self.match_word("ASC", "DESC")
        self.expect(TokenType.RPAREN)
        return names

    def skip_balanced(self) -> None:
        self.expect(TokenType.LPAREN)
        depth = 1
        while depth and not self.at_end():
            token = self.advance()
            if token.type == TokenType.LPAREN:
                depth += 1
            elif token.type == TokenType.RPAREN:
                depth -= 1

    def clustered_option(self) -> Optional[bool]:
        if self.match_word("CLUSTERED"):
            return True
        if self.match_word("NONCLUSTERED"):
            return False
        return None

    # Shared grammar ------------------------------------------------------ #

    def references(self, columns: List[str]) -> ForeignKeyClause:
        self.expect_word("REFERENCES")
        table = self.qualified_name()
        ref_columns = self.name_list() if self.peek().type == TokenType.LPAREN else []
        return ForeignKeyClause(columns=columns, ref_table=table, ref_columns=ref_columns)

    def constraint_body(self, name: Optional[str]) -> TableConstraint:
        if self.match_word("PRIMARY"):
            self.expect_word("KEY")
            clustered = self.clustered_option()
            return KeyConstraint("PRIMARY KEY", self.name_list(), name, clustered)
        if self.match_word("UNIQUE"):
            clustered = self.clustered_option()
            return KeyConstraint("UNIQUE", self.name_list(), name, clustered)
        if self.match_word("FOREIGN"):
            self.expect_word("KEY")
            columns = self.name_list()
            return ForeignKeyConstraint(self.references(columns), name)
        kind = self.peek().value.upper() or "CONSTRAINT"
        while not self.at_end() and not self.peek().is_word(*BOUNDARY_WORDS):
            if self.peek().type in (TokenType.SEMICOLON, TokenType.COMMA):
                break
            if self.peek().type == TokenType.LPAREN:
                self.skip_balanced()
            else:
                self.advance()
        return IgnoredConstraint(kind, name)

    def expression_text(self) -> str:
        first = self.peek()
        if first.type == TokenType.LPAREN:
            self.skip_balanced()
        elif first.type == TokenType.OPERATOR and first.value in "+-":
            self.advance()
            self.advance()
        elif first.type == TokenType.WORD:
            self.advance()
            if self.peek().type == TokenType.LPAREN:
                self.skip_balanced()
        elif first.type == TokenType.EOF:
            raise ParseError("Expected expression", first)
        else:
            self.advance()
        return self.source[first.start : self.previous().end]


def _split_top_level_tokens(tokens: List[Token]) -> List[List[Token]]:
    parts: List[List[Token]] = []
    current: List[Token] = []
    depth = 0

    for token in tokens:
        if token.type == TokenType.LPAREN:
            depth += 1
        elif token.type == TokenType.RPAREN:
            depth = max(0, depth - 1)
        elif token.type == TokenType.COMMA and depth == 0:
            if current:
                parts.append(current)
            current = []
            continue
        current.append(token)

    if current:
        parts.append(current)
    return parts


def split_top_level(body: str) -> List[str]:
    """Split a CREATE TABLE body on commas that sit outside any parentheses."""
    tokens = tokenize(body)[:-1]
    return [
        body[part[0].start : part[-1].end].strip()
        for part in _split_top_level_tokens(tokens)
    ]


def _column_def(cursor: _Cursor) -> ColumnDef:
    name = cursor.name()
    type_token = cursor.peek()
    if not type_token.is_name:
        raise ParseError("Expected data type", type_token)
    cursor.advance()
    data_type = type_token.value
    # User-defined types may be schema-qualified: [dbo].[Money]
    while cursor.match(TokenType.PERIOD):
        data_type = cursor.name()

    column = ColumnDef(name=name, data_type=data_type.upper())
    if cursor.match(TokenType.LPAREN):
        while not cursor.at_end() and cursor.peek().type != TokenType.RPAREN:
            token = cursor.advance()
            if token.type in (TokenType.NUMBER, TokenType.WORD):
                column.type_args.append(token.value.upper())
        cursor.expect(TokenType.RPAREN)

    constraint_name: Optional[str] = None
    while not cursor.at_end():
        if cursor.match_word("IDENTITY"):
            column.identity = True
            if cursor.peek().type == TokenType.LPAREN:
                cursor.skip_balanced()
        elif cursor.match_word("NOT"):
            if cursor.match_word("NULL"):
                column.nullable = False
            elif cursor.match_word("FOR"):
                cursor.match_word("REPLICATION")
        elif cursor.match_word("NULL"):
            column.nullable = True
        elif cursor.match_word("CONSTRAINT"):
            constraint_name = cursor.name()
            continue
        elif cursor.match_word("DEFAULT"):
            column.default = cursor.expression_text()
        elif cursor.match_word("PRIMARY"):
            cursor.expect_word("KEY")
            clustered = cursor.clustered_option()
            column.primary_key = KeyConstraint("PRIMARY KEY", [name], constraint_name, clustered)
        elif cursor.match_word("UNIQUE"):
            clustered = cursor.clustered_option()
            column.unique = KeyConstraint("UNIQUE", [name], constraint_name, clustered)
        elif cursor.match_word("FOREIGN"):
            cursor.expect_word("KEY")
            column.references = ForeignKeyConstraint(cursor.references([name]), constraint_name)
        elif cursor.peek().is_word("REFERENCES"):
            column.references = ForeignKeyConstraint(cursor.references([name]), constraint_name)
        elif cursor.match_word("CHECK"):
            if cursor.peek().type == TokenType.LPAREN:
                cursor.skip_balanced()
        elif cursor.match_word("COLLATE"):
            cursor.advance()
        else:
            # ROWGUIDCOL, SPARSE, ON DELETE ... and other options without model meaning.
            cursor.advance()
        constraint_name = None
    return column


def _table_element(tokens: List[Token], source: str) -> Union[ColumnDef, TableConstraint]:
    last = tokens[-1]
    cursor = _Cursor(tokens + [Token(TokenType.EOF, "", last.line, last.end, last.end)], source)
    if cursor.match_word("CONSTRAINT"):
        return cursor.constraint_body(cursor.name())
    if cursor.peek().is_word(*CONSTRAINT_WORDS):
        return cursor.constraint_body(None)
    return _column_def(cursor)


class DDLParser(_Cursor):
    def __init__(self, source: str, line_base: int = 0) -> None:
        super().__init__(tokenize(source), source)
        self.line_base = line_base
        self.script = Script()

    def parse(self) -> Script:
        while not self.at_end():
            self._statement()
        return self.script

    def _line(self, token: Token) -> int:
        return token.line + self.line_base

    def _statement(self) -> None:
        start_index = self.index
        try:
            self._dispatch()
        except ParseError as exc:
            self.index = start_index
            self._skip(str(exc))

    def _dispatch(self) -> None:
        token = self.peek()
        if token.type == TokenType.SEMICOLON or token.is_word("GO", "END"):
            self.advance()
        elif token.is_word("USE"):
            self.advance()
            self.name()
        elif token.is_word(*BENIGN_WORDS):
            self._consume_to_boundary()
        elif token.is_word("BEGIN"):
            self.advance()
            if self.peek().is_word("TRAN", "TRANSACTION"):
                self._consume_to_boundary()
            else:
                self._block()
        elif token.is_word("IF"):
            self._if_statement()
        elif token.is_word("EXEC", "EXECUTE"):
            self._exec_statement()
        elif token.is_word("CREATE"):
            self._create_statement()
        elif token.is_word("ALTER"):
            self._alter_statement()
        else:
            self._skip("unrecognized statement")

    # Control flow -------------------------------------------------------- #

    def _block(self) -> None:
        while not self.at_end() and not self.peek().is_word("END"):
            self._statement()
        self.match_word("END")

    def _if_statement(self) -> None:
        self.expect_word("IF")
        self.match_word("NOT")
        if self.match_word("EXISTS"):
            self.skip_balanced()
        else:
            # IF OBJECT_ID(N'...') IS NULL and similar conditions.
            while not self.at_end() and not self.peek().is_word(
                "BEGIN", "CREATE", "ALTER", "EXEC", "EXECUTE", "GO"
            ):
                if self.peek().type == TokenType.LPAREN:
                    self.skip_balanced()
                else:
                    self.advance()
        self._guarded_body()
        if self.match_word("ELSE"):
            self._guarded_body()

    def _guarded_body(self) -> None:
        if self.match_word("BEGIN"):
            self._block()
        elif not self.at_end():
            self._statement()

    def _exec_statement(self) -> None:
        self.advance()
        wrapped = self.match(TokenType.LPAREN)
        self.match_word("SP_EXECUTESQL")
        if self.peek().type != TokenType.STRING:
            raise ParseError("Expected dynamic SQL string", self.peek())
        literal = self.advance()
        if wrapped:
            self.expect(TokenType.RPAREN)
        else:
            self._consume_to_boundary()
        embedded = DDLParser(literal.value, line_base=self._line(literal) - 1).parse()
        self.script.statements.extend(embedded.statements)
        self.script.skipped.extend(embedded.skipped)

    # DDL ----------------------------------------------------------------- #

    def _create_statement(self) -> None:
        start = self.advance()
        if self.match_word("SCHEMA"):
            name = self.name()
            if self.match_word("AUTHORIZATION"):
                self.name()
            self.script.statements.append(CreateSchema(name=name, line=self._line(start)))
            self.match(TokenType.SEMICOLON)
            return
        if self.match_word("TABLE"):
            self._create_table(start)
            return
        is_unique = self.match_word("UNIQUE")
        clustered = self.clustered_option()
        if self.match_word("INDEX"):
            name = self.name()
            self.expect_word("ON")
            table = self.qualified_name()
            columns = self.name_list()
            self._consume_to_boundary()
            self.script.statements.append(
                CreateIndex(
                    name=name,
                    table=table,
                    columns=columns,
                    is_unique=is_unique,
                    clustered=clustered,
                    line=self._line(start),
                )
            )
            return
        raise ParseError("Unsupported CREATE statement", self.peek())

    def _create_table(self, start: Token) -> None:
        if self.match_word("IF"):
            self.expect_word("NOT")
            self.expect_word("EXISTS")
        table = self.qualified_name()
        self.expect(TokenType.LPAREN)

        body: List[Token] = []
        depth = 1
        while True:
            token = self.advance()
            if token.type == TokenType.EOF:
                raise ParseError("Unterminated CREATE TABLE body", token)
            if token.type == TokenType.LPAREN:
                depth += 1
            elif token.type == TokenType.RPAREN:
                depth -= 1
                if depth == 0:
                    break
            body.append(token)

        statement = CreateTable(table=table, line=self._line(start))
        for element_tokens in _split_top_level_tokens(body):
            try:
                element = _table_element(element_tokens, self.source)
            except ParseError as exc:
                text = self.source[element_tokens[0].start : element_tokens[-1].end]
                self._record_skip(text, element_tokens[0], f"unrecognized table element: {exc}")
                continue
            if isinstance(element, ColumnDef):
                statement.columns.append(element)
            else:
                statement.constraints.append(element)

        # ON [PRIMARY], TEXTIMAGE_ON ..., WITH (...) storage options.
        self._consume_to_boundary()
        self.script.statements.append(statement)

    def _alter_statement(self) -> None:
        start = self.advance()
        self.expect_word("TABLE")
        table = self.qualified_name()
        if self.match_word("WITH"):
            self.match_word("CHECK", "NOCHECK")
        self.expect_word("ADD")
        name = self.name() if self.match_word("CONSTRAINT") else None
        if not self.peek().is_word(*CONSTRAINT_WORDS):
            raise ParseError("Unsupported ALTER TABLE ADD", self.peek())
        constraint = self.constraint_body(name)
        self._consume_to_boundary()
        if isinstance(constraint, IgnoredConstraint):
            return
        self.script.statements.append(
            AlterTableAddConstraint(table=table, constraint=constraint, line=self._line(start))
        )

    # Recovery ------------------------------------------------------------ #

    def _consume_to_boundary(self, include_first: bool = False) -> None:
        depth = 0
        consumed = not include_first
        while not self.at_end():
            token = self.peek()
            if depth == 0:
                if token.type == TokenType.SEMICOLON:
                    self.advance()
                    return
                if consumed and token.is_word(*BOUNDARY_WORDS):
                    return
            if token.type == TokenType.LPAREN:
                depth += 1
            elif token.type == TokenType.RPAREN:
                depth = max(0, depth - 1)
            self.advance()
            consumed = True

    def _skip(self, reason: str) -> None:
        first = self.peek()
        self._consume_to_boundary(include_first=True)
        if self.index == 0 or self.previous().end <= first.start:
            # Nothing consumed; step over one token so the parse always advances.
            self.advance()
        text = self.source[first.start : self.previous().end]
        self._record_skip(text, first, reason)

    def _record_skip(self, text: str, first: Token, reason: str) -> None:
        text = text.strip()
        if not text:
            return
        line = self._line(first)
        logger.debug("Skipped DDL at line %d (%s): %s", line, reason, text[:80])
        self.script.skipped.append(Skipped(text=text, line=line, reason=reason))


def parse_script(ddl_text: str) -> Script:
    return DDLParser(ddl_text).parse()
