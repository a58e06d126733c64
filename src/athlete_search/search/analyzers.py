"""Analyzer utilities for athlete names and locations.

Analyzers follow Whoosh's composable tokenizer/filter design: a tokenizer
yields ``Token`` objects and filters transform the stream. The same analyzer
is applied at index time and query time so that terms line up.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
import re
from typing import Protocol
import unicodedata


@dataclass
class Token:
    """Represents a token emitted by analyzers."""

    text: str
    position: int
    start_char: int
    end_char: int


class Analyzer(Protocol):
    """Protocol implemented by analyzers."""

    def __call__(self, text: str) -> list[Token]:  # pragma: no cover - interface definition
        ...


class Tokenizer(Protocol):
    def __call__(self, text: str) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class TokenFilter(Protocol):
    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class RegexTokenizer:
    """Regex-based tokenizer that yields word tokens."""

    def __init__(self, pattern: str = r"[\w']+", flags: int = re.UNICODE) -> None:
        self.pattern = re.compile(pattern, flags)

    def __call__(self, text: str) -> Iterator[Token]:
        for position, match in enumerate(self.pattern.finditer(text)):
            yield Token(
                text=match.group(0),
                position=position,
                start_char=match.start(),
                end_char=match.end(),
            )


class LowercaseFilter:
    """Filter that lowercases token text."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if not token.text.islower():
                token.text = token.text.lower()
            yield token


def fold_accents(text: str) -> str:
    """Strip combining marks so ``Müller`` and ``Muller`` share a term."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


class AccentFoldingFilter:
    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if not token.text.isascii():
                token.text = fold_accents(token.text)
            yield token


class StripApostropheFilter:
    """Drop apostrophes so ``O'Neil`` indexes as ``oneil``; empty tokens are removed."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if "'" in token.text:
                token.text = token.text.replace("'", "")
            if token.text:
                yield token


class AnalyzerPipeline:
    """Composable analyzer pipeline (tokenizer + filters)."""

    def __init__(self, tokenizer: Tokenizer, filters: Sequence[TokenFilter] | None = None) -> None:
        self.tokenizer = tokenizer
        self.filters = list(filters or [])

    def __call__(self, text: str) -> list[Token]:
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        tokens = list(stream)
        for idx, token in enumerate(tokens):  # normalize positions post-filtering
            token.position = idx
        return tokens


class KeywordAnalyzer:
    """Analyzer that treats the entire input verbatim as a single token."""

    def __call__(self, text: str) -> list[Token]:
        if not text:
            return []
        return [Token(text=text, position=0, start_char=0, end_char=len(text))]


def normalize_exact(text: str) -> str:
    """Case- and accent-insensitive form of a whole value with collapsed whitespace."""
    return " ".join(fold_accents(text).casefold().split())


class ExactAnalyzer:
    """Single-token analyzer for whole-value matches (exact name, exact country)."""

    def __call__(self, text: str) -> list[Token]:
        normalized = normalize_exact(text or "")
        if not normalized:
            return []
        return [Token(text=normalized, position=0, start_char=0, end_char=len(text))]


class StandardAnalyzer:
    """Word analyzer for names and locations: lowercase, accent folding, no stemming or stopwords."""

    def __init__(self) -> None:
        filters: list[TokenFilter] = [LowercaseFilter(), AccentFoldingFilter(), StripApostropheFilter()]
        self.pipeline = AnalyzerPipeline(RegexTokenizer(), filters)

    def __call__(self, text: str) -> list[Token]:
        return self.pipeline(text)


_ANALYZER_FACTORIES: dict[str, Callable[[], Analyzer]] = {
    "default": lambda: StandardAnalyzer(),
    "exact": lambda: ExactAnalyzer(),
    "keyword": lambda: KeywordAnalyzer(),
}


def get_analyzer(name: str | None) -> Analyzer:
    """Return analyzer by name, defaulting to the standard analyzer."""

    if name is None:
        return _ANALYZER_FACTORIES["default"]()
    normalized = name.lower()
    if normalized not in _ANALYZER_FACTORIES:
        msg = f"Unknown analyzer '{name}'. Available: {sorted(_ANALYZER_FACTORIES)}"
        raise ValueError(msg)
    return _ANALYZER_FACTORIES[normalized]()


def analyze_terms(analyzer: Analyzer, text: str) -> list[str]:
    return [token.text for token in analyzer(text)]
