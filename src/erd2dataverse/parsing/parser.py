"""Recursive-descent parser for Mermaid ER diagrams."""

from typing import Dict, List, NamedTuple, Optional, Tuple

from erd2dataverse.config.logging import get_logger
from erd2dataverse.errors import ParseError
from erd2dataverse.generation.naming import humanize
from erd2dataverse.ir.diagram import (
    Cardinality,
    Constraint,
    DiagramGraph,
    EntityDef,
    FieldDef,
    RelationshipDef,
)
from .diagnostics import Diagnostics
from .lexer import SYMBOL_CARDINALITY, WORD_CARDINALITY, Token, TokenKind, tokenize

logger = get_logger(__name__)

HEADER = "erdiagram"

# Statements with no schema meaning; skipped to the end of their line
DIRECTIVES = {"title", "direction", "acctitle", "accdescr", "classdef", "class", "style"}

# Columns the platform adds to every table on its own
SYSTEM_COLUMNS = {"createdon", "createdby", "modifiedon", "modifiedby"}

_KEY_CONSTRAINTS = {"PK": Constraint.PRIMARY_KEY, "FK": Constraint.FOREIGN_KEY, "UK": Constraint.UNIQUE}
_MANY_WORDS = ("more", "many", "+")


class ParseResult(NamedTuple):
    graph: DiagramGraph
    diagnostics: Diagnostics


def classify_cardinality(token: str) -> Tuple[bool, bool]:
    """
    Return ``(left_is_many, right_is_many)`` for a cardinality token.

    Works for both the symbolic form (``||--o{``) and word aliases
    (``one or more to zero or many``).
    """
    m = SYMBOL_CARDINALITY.fullmatch(token)
    if m:
        return m.group(1).startswith("}"), m.group(3).endswith("{")
    m = WORD_CARDINALITY.fullmatch(token)
    if not m:
        raise ValueError(f"not a cardinality token: {token!r}")
    left, right = m.group(1).lower(), m.group(3).lower()
    return any(w in left for w in _MANY_WORDS), any(w in right for w in _MANY_WORDS)


class DiagramParser:
    """
    Parses diagram text into a DiagramGraph.

    Grammar (newlines separate statements but are optional between blocks)::

        diagram      := [ "erDiagram" ] statement*
        statement    := entity [ alias ] ( block | relationship )?
        alias        := "[" STRING "]"
        block        := "{" attribute* "}"
        attribute    := type name [ key ( ","? key )* ] [ "NOT" "NULL" ] [ STRING ]
        relationship := CARDINALITY entity [ alias ] [ ":" label ]

    Syntax errors raise ParseError; everything recoverable is reported on
    the diagnostics side channel.
    """

    def __init__(self, text: str):
        self.tokens: List[Token] = list(tokenize(text))
        self.pos = 0
        self.diagnostics = Diagnostics()
        self._entities: Dict[str, EntityDef] = {}
        self._with_block: set = set()
        self._relationships: List[RelationshipDef] = []

    # token helpers

    def _peek(self, offset: int = 0) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.kind != TokenKind.EOF:
            self.pos += 1
        return tok

    def _expect(self, kind: TokenKind, what: str) -> Token:
        tok = self._peek()
        if tok.kind != kind:
            raise ParseError(f"expected {what}", tok.line, tok.column, tok.text or tok.kind.value)
        return self._advance()

    def _skip_newlines(self) -> None:
        while self._peek().kind == TokenKind.NEWLINE:
            self._advance()

    def _skip_line(self) -> None:
        while self._peek().kind not in (TokenKind.NEWLINE, TokenKind.EOF):
            self._advance()

    # grammar

    def parse(self) -> ParseResult:
        self._skip_newlines()
        first = self._peek()
        if first.kind == TokenKind.IDENT and first.text.lower() == HEADER:
            self._advance()

        while True:
            self._skip_newlines()
            tok = self._peek()
            if tok.kind == TokenKind.EOF:
                break
            if tok.kind != TokenKind.IDENT:
                raise ParseError("expected an entity name", tok.line, tok.column, tok.text)
            if tok.text.lower() in DIRECTIVES:
                self._skip_line()
                continue
            self._statement()

        self._add_implicit_entities()
        graph = DiagramGraph(
            entities=list(self._entities.values()),
            relationships=self._relationships,
        )
        logger.info(
            f"Parsed {len(graph.entities)} entities and {len(graph.relationships)} relationships "
            f"({len(self.diagnostics)} warnings)"
        )
        return ParseResult(graph, self.diagnostics)

    def _alias(self) -> Optional[str]:
        if self._peek().kind != TokenKind.LBRACKET:
            return None
        self._advance()
        tok = self._peek()
        if tok.kind not in (TokenKind.STRING, TokenKind.IDENT):
            raise ParseError("expected an alias inside '[ ]'", tok.line, tok.column, tok.text)
        self._advance()
        self._expect(TokenKind.RBRACKET, "']' after alias")
        return tok.text.strip() or None

    def _statement(self) -> None:
        name_tok = self._advance()
        alias = self._alias()
        nxt = self._peek()

        if nxt.kind == TokenKind.LBRACE:
            fields = self._block(name_tok)
            self._define_entity(name_tok, alias, fields)
        elif nxt.kind == TokenKind.CARDINALITY:
            self._touch_entity(name_tok, alias)
            self._relationship(name_tok)
        elif nxt.kind in (TokenKind.NEWLINE, TokenKind.EOF, TokenKind.IDENT):
            self._touch_entity(name_tok, alias)
        else:
            raise ParseError(
                f"expected '{{' or a relationship after '{name_tok.text}'", nxt.line, nxt.column, nxt.text
            )

    def _block(self, name_tok: Token) -> List[FieldDef]:
        open_tok = self._advance()
        fields: List[FieldDef] = []
        while True:
            self._skip_newlines()
            tok = self._peek()
            if tok.kind == TokenKind.RBRACE:
                self._advance()
                return fields
            if tok.kind == TokenKind.EOF:
                raise ParseError(
                    f"entity '{name_tok.text}' block is not closed", open_tok.line, open_tok.column, "{"
                )
            fields.append(self._attribute(name_tok.text))

    def _attribute(self, entity_name: str) -> FieldDef:
        type_tok = self._expect(TokenKind.IDENT, "an attribute type")
        name_tok = self._peek()
        if name_tok.kind != TokenKind.IDENT:
            raise ParseError(
                f"attribute of type '{type_tok.text}' in '{entity_name}' has no name",
                name_tok.line,
                name_tok.column,
                name_tok.text or name_tok.kind.value,
            )
        self._advance()

        constraints: List[Constraint] = []
        while True:
            tok = self._peek()
            if tok.kind == TokenKind.IDENT and tok.text in _KEY_CONSTRAINTS:
                self._advance()
                constraint = _KEY_CONSTRAINTS[tok.text]
            elif tok.kind == TokenKind.IDENT and tok.text == "NOT" and self._peek(1).text == "NULL":
                self._advance()
                self._advance()
                constraint = Constraint.NOT_NULL
            elif tok.kind == TokenKind.COMMA and constraints:
                self._advance()
                continue
            else:
                break
            if constraint not in constraints:
                constraints.append(constraint)

        description = None
        if self._peek().kind == TokenKind.STRING:
            description = self._advance().text

        end = self._peek()
        if end.kind not in (TokenKind.NEWLINE, TokenKind.RBRACE, TokenKind.IDENT, TokenKind.EOF):
            raise ParseError(
                f"unexpected '{end.text}' in attribute '{name_tok.text}'", end.line, end.column, end.text
            )
        return FieldDef(
            name=name_tok.text,
            type_name=type_tok.text,
            constraints=constraints,
            description=description,
            line=type_tok.line,
        )

    def _relationship(self, left_tok: Token) -> None:
        card = self._advance()
        right_tok = self._peek()
        if right_tok.kind != TokenKind.IDENT:
            raise ParseError(
                "relationship is missing its target entity", right_tok.line, right_tok.column, card.text
            )
        self._advance()
        self._touch_entity(right_tok, self._alias())

        label = None
        if self._peek().kind == TokenKind.COLON:
            colon = self._advance()
            label = self._label()
            if label is None:
                raise ParseError("expected a relationship label after ':'", colon.line, colon.column, ":")

        left, right = left_tok.text, right_tok.text
        left_many, right_many = classify_cardinality(card.text)
        cardinality: Cardinality = "many_to_many" if left_many and right_many else "one_to_many"
        # The "one" side is the referenced source; flip when the many side is written first
        source, target = (right, left) if left_many and not right_many else (left, right)

        if label is None:
            label = f"{source}_{target}"
            self.diagnostics.warn(
                "MISSING_LABEL",
                f"{left} {card.text} {right}",
                f"relationship has no label, using '{label}'",
                line=card.line,
            )

        self._relationships.append(
            RelationshipDef(
                source=source,
                target=target,
                cardinality=cardinality,
                label=label,
                token=card.text,
                line=card.line,
            )
        )

    def _label(self) -> Optional[str]:
        tok = self._peek()
        if tok.kind == TokenKind.STRING:
            return self._advance().text
        words: List[str] = []
        while self._peek().kind == TokenKind.IDENT:
            # An identifier that opens the next statement ends the label
            if words and self._peek(1).kind in (TokenKind.CARDINALITY, TokenKind.LBRACE, TokenKind.LBRACKET):
                break
            words.append(self._advance().text)
        return " ".join(words) if words else None

    # graph assembly

    def _touch_entity(self, name_tok: Token, alias: Optional[str]) -> None:
        """Register a reference to an entity without replacing its definition."""
        existing = self._entities.get(name_tok.text)
        if existing is None:
            self._entities[name_tok.text] = EntityDef(
                name=name_tok.text,
                display_name=alias or humanize(name_tok.text),
                line=name_tok.line,
            )
        elif alias:
            existing.display_name = alias

    def _define_entity(self, name_tok: Token, alias: Optional[str], fields: List[FieldDef]) -> None:
        name = name_tok.text
        if name in self._with_block:
            self.diagnostics.warn(
                "DUPLICATE_ENTITY",
                name,
                f"entity '{name}' is defined more than once; the definition on line {name_tok.line} wins",
                line=name_tok.line,
            )
        self._with_block.add(name)

        kept = self._clean_fields(name, fields)
        display_name = alias or humanize(name)
        existing = self._entities.get(name)
        if existing is not None and not alias and existing.display_name != humanize(name):
            display_name = existing.display_name
        self._entities[name] = EntityDef(
            name=name,
            display_name=display_name,
            fields=kept,
            is_junction_candidate=len([f for f in kept if f.is_foreign_key]) >= 2,
            line=name_tok.line,
        )

    def _clean_fields(self, entity_name: str, fields: List[FieldDef]) -> List[FieldDef]:
        by_name: Dict[str, FieldDef] = {}
        for f in fields:
            if f.name.lower() in SYSTEM_COLUMNS:
                self.diagnostics.warn(
                    "SYSTEM_COLUMN",
                    f"{entity_name}.{f.name}",
                    f"'{f.name}' is provided by the platform and was dropped",
                    line=f.line,
                )
                continue
            if f.name in by_name:
                self.diagnostics.warn(
                    "DUPLICATE_FIELD",
                    f"{entity_name}.{f.name}",
                    f"field '{f.name}' is declared more than once; the declaration on line {f.line} wins",
                    line=f.line,
                )
            by_name[f.name] = f
        return list(by_name.values())

    def _add_implicit_entities(self) -> None:
        for name, entity in self._entities.items():
            if name in self._with_block or entity.fields:
                continue
            if not any(r.source == name or r.target == name for r in self._relationships):
                continue
            entity.implicit = True
            self.diagnostics.warn(
                "IMPLICIT_ENTITY",
                name,
                f"entity '{name}' is only referenced by relationships and has no attributes",
                line=entity.line,
            )


def parse_diagram(text: str) -> ParseResult:
    """
    Parse Mermaid ER diagram text.

    Args:
        text: Diagram source

    Returns:
        ParseResult with the graph and the diagnostics stream

    Raises:
        ParseError: If an entity or relationship line is malformed
    """
    return DiagramParser(text).parse()
