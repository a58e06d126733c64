"""Classic query-string syntax: escaping, lexing and recursive-descent parsing.

Supported syntax::

    smith                      term on the default field
    "van der berg"             phrase
    location:france            field-qualified term
    +smith -location:russia    required / prohibited clauses
    a AND b, a OR b, NOT a     boolean operators (also && || !)
    (a OR b) AND c             grouping
    smi*  sm?th  *mit*         prefix and wildcard terms
    smyth~  smyth~1            fuzzy terms (at most 2 edits)
    age_value:[18 TO 20]       ranges on numeric fields ({} = exclusive, * = open)
    smith^2.5                  boost

Terms are analyzed with the target field's analyzer so they line up with
indexed terms. Anything the grammar rejects raises ``MalformedQueryError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from athlete_search.errors import MalformedQueryError
from athlete_search.search.analyzers import KeywordAnalyzer, fold_accents
from athlete_search.search.fuzzy import MAX_EDIT_DISTANCE
from athlete_search.search.query import (
    BooleanQuery,
    FuzzyQuery,
    MatchAllQuery,
    Occur,
    PhraseQuery,
    PrefixQuery,
    Query,
    RangeQuery,
    TermQuery,
    WildcardQuery,
)
from athlete_search.search.schema import KeywordField, NumericField, Schema, TextField


# Characters with syntactic meaning; escape() prefixes each with a backslash
ESCAPE_CHARS = frozenset('\\+-!():^[]"{}~*?|&/')

# Characters that end a bare term
_TERM_BREAK = frozenset('()[]{}:^~"')

# Deepest allowed group nesting
MAX_NESTING_DEPTH = 64


def escape(text: str) -> str:
    """Backslash-escape every syntax character so ``text`` parses as literal terms.

    >>> escape("-81")
    '\\\\-81'
    """
    return "".join(f"\\{ch}" if ch in ESCAPE_CHARS else ch for ch in text)


class TokenType(Enum):
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    PLUS = "+"
    MINUS = "-"
    LPAREN = "("
    RPAREN = ")"
    LBRACKET = "["
    RBRACKET = "]"
    LBRACE = "{"
    RBRACE = "}"
    COLON = ":"
    CARET = "^"
    TILDE = "~"
    PHRASE = "PHRASE"
    TERM = "TERM"
    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    type: TokenType
    text: str
    position: int
    raw: str = ""

    @property
    def has_wildcard(self) -> bool:
        return bool(_unescaped_wildcards(self.raw))


_SINGLE_CHAR_TOKENS = {
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    ":": TokenType.COLON,
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "!": TokenType.NOT,
}

_KEYWORDS = {"AND": TokenType.AND, "OR": TokenType.OR, "NOT": TokenType.NOT}


def _unescape(raw: str) -> str:
    out = []
    chars = iter(raw)
    for ch in chars:
        out.append(next(chars, "") if ch == "\\" else ch)
    return "".join(out)


def _unescaped_wildcards(raw: str) -> list[int]:
    positions = []
    escaped = False
    for idx, ch in enumerate(raw):
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch in "*?":
            positions.append(idx)
    return positions


class QueryLexer:
    """Split a query string into tokens, honoring backslash escapes and quotes."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def tokenize(self) -> list[Token]:
        tokens: list[Token] = []
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            start = self.pos
            if ch.isspace():
                self.pos += 1
            elif text.startswith("&&", start) or text.startswith("||", start):
                tokens.append(Token(TokenType.AND if ch == "&" else TokenType.OR, text[start : start + 2], start))
                self.pos += 2
            elif ch in _SINGLE_CHAR_TOKENS:
                tokens.append(Token(_SINGLE_CHAR_TOKENS[ch], ch, start))
                self.pos += 1
            elif ch == "^":
                self.pos += 1
                tokens.append(Token(TokenType.CARET, self._read_number(required=True), start))
            elif ch == "~":
                self.pos += 1
                tokens.append(Token(TokenType.TILDE, self._read_number(required=False), start))
            elif ch == '"':
                tokens.append(self._read_phrase())
            else:
                tokens.append(self._read_term())
        tokens.append(Token(TokenType.EOF, "", len(text)))
        return tokens

    def _read_number(self, *, required: bool) -> str:
        start = self.pos
        while self.pos < len(self.text) and (self.text[self.pos].isdigit() or self.text[self.pos] == "."):
            self.pos += 1
        value = self.text[start : self.pos]
        if required and not value:
            raise MalformedQueryError("expected a number after '^'", text=self.text, position=start)
        return value

    def _read_phrase(self) -> Token:
        start = self.pos
        self.pos += 1
        chars = []
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch == "\\" and self.pos + 1 < len(self.text):
                chars.append(self.text[self.pos + 1])
                self.pos += 2
                continue
            if ch == '"':
                self.pos += 1
                return Token(TokenType.PHRASE, "".join(chars), start)
            chars.append(ch)
            self.pos += 1
        raise MalformedQueryError("unterminated phrase", text=self.text, position=start)

    def _read_term(self) -> Token:
        start = self.pos
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            if ch == "\\":
                if self.pos + 1 >= len(text):
                    raise MalformedQueryError("dangling escape character", text=text, position=self.pos)
                self.pos += 2
                continue
            if ch.isspace() or ch in _TERM_BREAK:
                break
            self.pos += 1
        raw = text[start : self.pos]
        if raw in _KEYWORDS:
            return Token(_KEYWORDS[raw], raw, start, raw)
        return Token(TokenType.TERM, _unescape(raw), start, raw)


class QueryParser:
    """Recursive-descent parser producing a query tree for one schema.

    Clause semantics follow the classic default-OR parser: bare clauses are
    optional, ``+``/``AND`` make them required, ``-``/``NOT`` prohibit them.
    """

    def __init__(self, schema: Schema, default_field: str = "name") -> None:
        if default_field not in schema:
            raise ValueError(f"Unknown default field '{default_field}'")
        self.schema = schema
        self.default_field = default_field
        self._tokens: list[Token] = []
        self._pos = 0
        self._text = ""
        self._depth = 0

    def parse(self, text: str) -> Query:
        if not text or not text.strip():
            raise MalformedQueryError("empty query", text=text)
        self._text = text
        self._tokens = QueryLexer(text).tokenize()
        self._pos = 0
        self._depth = 0
        query = self._parse_query(self.default_field, nested=False)
        if self._peek().type is not TokenType.EOF:
            self._fail(f"unexpected '{self._peek().text}'")
        return query

    # Token helpers

    def _peek(self, offset: int = 0) -> Token:
        idx = min(self._pos + offset, len(self._tokens) - 1)
        return self._tokens[idx]

    def _advance(self) -> Token:
        token = self._peek()
        if token.type is not TokenType.EOF:
            self._pos += 1
        return token

    def _expect(self, *types: TokenType) -> Token:
        token = self._peek()
        if token.type not in types:
            expected = " or ".join(t.value for t in types)
            self._fail(f"expected {expected}, found '{token.text or token.type.value}'")
        return self._advance()

    def _fail(self, message: str) -> None:
        raise MalformedQueryError(message, text=self._text, position=self._peek().position)

    # Grammar

    def _parse_query(self, field: str, *, nested: bool) -> Query:
        clauses: list[tuple[Occur, Query]] = []
        first = True
        while True:
            token = self._peek()
            if token.type is TokenType.EOF or (nested and token.type is TokenType.RPAREN):
                break
            conjunction = None
            if token.type in (TokenType.AND, TokenType.OR):
                if first:
                    self._fail(f"query cannot start with {token.type.value}")
                conjunction = self._advance().type
                if self._peek().type in (TokenType.EOF, TokenType.RPAREN):
                    self._fail(f"{conjunction.value} must be followed by a clause")
            modifier = None
            if self._peek().type in (TokenType.PLUS, TokenType.MINUS, TokenType.NOT):
                modifier = self._advance().type
            clause = self._parse_clause(field)
            self._add_clause(clauses, conjunction, modifier, clause)
            first = False
        return self._combine(clauses)

    @staticmethod
    def _add_clause(
        clauses: list[tuple[Occur, Query]],
        conjunction: TokenType | None,
        modifier: TokenType | None,
        query: Query | None,
    ) -> None:
        if clauses and conjunction is TokenType.AND:
            occur, previous = clauses[-1]
            if occur is Occur.SHOULD:
                clauses[-1] = (Occur.MUST, previous)
        if query is None:
            return
        prohibited = modifier in (TokenType.MINUS, TokenType.NOT)
        required = modifier is TokenType.PLUS or (conjunction is TokenType.AND and not prohibited)
        if prohibited:
            clauses.append((Occur.MUST_NOT, query))
        elif required:
            clauses.append((Occur.MUST, query))
        else:
            clauses.append((Occur.SHOULD, query))

    @staticmethod
    def _combine(clauses: list[tuple[Occur, Query]]) -> Query:
        if len(clauses) == 1 and clauses[0][0] is not Occur.MUST_NOT:
            return clauses[0][1]
        return BooleanQuery(
            must=tuple(q for occur, q in clauses if occur is Occur.MUST),
            should=tuple(q for occur, q in clauses if occur is Occur.SHOULD),
            must_not=tuple(q for occur, q in clauses if occur is Occur.MUST_NOT),
        )

    def _parse_clause(self, field: str) -> Query | None:
        token = self._peek()
        if token.type is TokenType.TERM and self._peek(1).type is TokenType.COLON:
            field_name = self._advance().text
            self._advance()
            if field_name == "*" and self._peek().type is TokenType.TERM and self._peek().raw == "*":
                self._advance()
                return self._apply_boost(MatchAllQuery())
            if field_name not in self.schema or not self.schema[field_name].indexed:
                self._fail(f"unknown field '{field_name}'")
            field = field_name

        token = self._peek()
        if token.type is TokenType.LPAREN:
            self._advance()
            self._depth += 1
            if self._depth > MAX_NESTING_DEPTH:
                self._fail("query nested too deeply")
            query: Query | None = self._parse_query(field, nested=True)
            self._expect(TokenType.RPAREN)
            self._depth -= 1
        elif token.type is TokenType.PHRASE:
            self._advance()
            if self._peek().type is TokenType.TILDE:
                self._fail("phrase slop is not supported")
            query = self._phrase_query(field, token.text)
        elif token.type is TokenType.TERM:
            self._advance()
            if self._peek().type is TokenType.TILDE:
                query = self._fuzzy_query(field, token, self._advance().text)
            else:
                query = self._term_query(field, token)
        elif token.type in (TokenType.LBRACKET, TokenType.LBRACE):
            query = self._parse_range(field)
        else:
            self._fail(f"unexpected '{token.text or token.type.value}'")
        return self._apply_boost(query)

    def _apply_boost(self, query: Query | None) -> Query | None:
        if self._peek().type is not TokenType.CARET:
            return query
        token = self._advance()
        try:
            boost = float(token.text)
        except ValueError as exc:
            raise MalformedQueryError(
                f"invalid boost '{token.text}'", text=self._text, position=token.position
            ) from exc
        return query.boosted(boost) if query is not None else None

    def _parse_range(self, field: str) -> Query:
        opening = self._advance()
        lower = self._range_bound()
        token = self._peek()
        if token.type is not TokenType.TERM or token.raw != "TO":
            self._fail("expected TO in range")
        self._advance()
        upper = self._range_bound()
        closing = self._expect(TokenType.RBRACKET, TokenType.RBRACE)

        schema_field = self.schema[field]
        if not isinstance(schema_field, NumericField):
            self._fail(f"range queries need a numeric field, '{field}' is {schema_field.field_type.value}")
        return RangeQuery(
            field,
            lower=lower,
            upper=upper,
            include_lower=opening.type is TokenType.LBRACKET,
            include_upper=closing.type is TokenType.RBRACKET,
        )

    def _range_bound(self) -> float | None:
        negative = False
        if self._peek().type is TokenType.MINUS:
            self._advance()
            negative = True
        token = self._expect(TokenType.TERM)
        if token.raw == "*" and not negative:
            return None
        try:
            value = float(token.text)
        except ValueError as exc:
            raise MalformedQueryError(
                f"range bound '{token.text}' is not a number", text=self._text, position=token.position
            ) from exc
        return -value if negative else value

    # Leaf construction

    def _multiterm_text(self, field: str, text: str) -> str:
        if isinstance(self.schema.analyzer_for(field), KeywordAnalyzer):
            return text
        return fold_accents(text).lower()

    def _numeric_value(self, field: str, token: Token) -> float:
        try:
            return float(token.text)
        except ValueError as exc:
            raise MalformedQueryError(
                f"'{token.text}' is not a number for field '{field}'", text=self._text, position=token.position
            ) from exc

    def _term_query(self, field: str, token: Token) -> Query | None:
        schema_field = self.schema[field]
        if isinstance(schema_field, NumericField):
            if token.has_wildcard:
                self._fail(f"wildcards are not supported on numeric field '{field}'")
            value = self._numeric_value(field, token)
            return RangeQuery(field, lower=value, upper=value)

        if token.has_wildcard:
            return self._wildcard_query(field, token.raw)

        terms = [t.text for t in self.schema.analyzer_for(field)(token.text)]
        if not terms:
            return None
        if len(terms) == 1:
            return TermQuery(field, terms[0])
        return BooleanQuery(should=tuple(TermQuery(field, term) for term in terms))

    def _wildcard_query(self, field: str, raw: str) -> Query:
        wildcard_positions = _unescaped_wildcards(raw)
        if wildcard_positions == [len(raw) - 1] and raw.endswith("*"):
            return PrefixQuery(field, self._multiterm_text(field, _unescape(raw[:-1])))
        pattern = []
        escaped = False
        for ch in raw:
            if escaped:
                pattern.append(f"\\{ch}" if ch in "*?\\" else self._multiterm_text(field, ch))
                escaped = False
            elif ch == "\\":
                escaped = True
            else:
                pattern.append(ch if ch in "*?" else self._multiterm_text(field, ch))
        return WildcardQuery(field, "".join(pattern))

    def _fuzzy_query(self, field: str, token: Token, distance_text: str) -> Query:
        if isinstance(self.schema[field], NumericField):
            self._fail(f"fuzzy queries are not supported on numeric field '{field}'")
        max_edits = MAX_EDIT_DISTANCE
        if distance_text:
            try:
                requested = float(distance_text)
            except ValueError as exc:
                raise MalformedQueryError(
                    f"invalid fuzzy distance '{distance_text}'", text=self._text, position=token.position
                ) from exc
            if requested >= 1:
                max_edits = min(int(requested), MAX_EDIT_DISTANCE)
            elif requested == 0:
                max_edits = 0
        return FuzzyQuery(field, self._multiterm_text(field, token.text), max_edits=max_edits)

    def _phrase_query(self, field: str, text: str) -> Query | None:
        schema_field = self.schema[field]
        if isinstance(schema_field, NumericField):
            self._fail(f"phrase queries are not supported on numeric field '{field}'")
        terms = [t.text for t in self.schema.analyzer_for(field)(text)]
        if not terms:
            return None
        if len(terms) == 1 or isinstance(schema_field, KeywordField):
            return TermQuery(field, terms[0])
        if not isinstance(schema_field, TextField):
            self._fail(f"phrase queries are not supported on field '{field}'")
        return PhraseQuery(field, tuple(terms))


def parse_query(text: str, schema: Schema, default_field: str = "name") -> Query:
    """Parse ``text`` into a query tree; raises ``MalformedQueryError`` on bad syntax."""
    return QueryParser(schema, default_field).parse(text)
