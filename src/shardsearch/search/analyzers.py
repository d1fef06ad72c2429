"""Analyzer collaborator: named analyzer factories and scoped analyzer sessions.

Analyzers follow a composable tokenizer + filters design. Schemas refer to
them by factory name (``"standard"``, ``"whitespace"``, ...) plus keyword
arguments, and analysis goes through an ``AnalyzerSession`` acquired with
``open_analyzer()``; the session is always closed when the block exits.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
import logging
import re
from typing import Any, Protocol

from shardsearch.errors import AnalyzerError


logger = logging.getLogger(__name__)


@dataclass
class Token:
    """Represents a token emitted by analyzers."""

    text: str
    start_char: int
    end_char: int

    def copy_with(self, text: str) -> Token:
        return Token(text=text, start_char=self.start_char, end_char=self.end_char)


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

    def __init__(self, pattern: str = r"[\w']+", flags: int = re.UNICODE | re.MULTILINE) -> None:
        self.pattern = re.compile(pattern, flags)

    def __call__(self, text: str) -> Iterator[Token]:
        for match in self.pattern.finditer(text):
            yield Token(text=match.group(0), start_char=match.start(), end_char=match.end())


class WhitespaceTokenizer(RegexTokenizer):
    """Splits on runs of whitespace and keeps punctuation attached."""

    def __init__(self) -> None:
        super().__init__(r"\S+")


class LowercaseFilter:
    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            yield token if token.text.islower() else token.copy_with(token.text.lower())


DEFAULT_STOPWORDS = (
    "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "if", "in", "into",
    "is", "it", "no", "not", "of", "on", "or", "such", "that", "the", "their", "then",
    "there", "these", "they", "this", "to", "was", "will", "with",
)  # fmt: skip


class StopFilter:
    """Removes stopwords from the stream."""

    def __init__(self, stopwords: Sequence[str] | None = None) -> None:
        vocab = stopwords if stopwords is not None else DEFAULT_STOPWORDS
        self.stopwords = {word.lower() for word in vocab}

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text.lower() not in self.stopwords:
                yield token


class MinLengthFilter:
    def __init__(self, min_length: int = 1) -> None:
        self.min_length = min_length

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if len(token.text) >= self.min_length:
                yield token


# Longest suffix first; (suffix, replacement)
_SUFFIX_RULES: tuple[tuple[str, str], ...] = (
    ("ational", "ate"),
    ("ization", "ize"),
    ("fulness", "ful"),
    ("iveness", "ive"),
    ("ation", "ate"),
    ("ness", ""),
    ("ment", ""),
    ("ingly", ""),
    ("edly", ""),
    ("ing", ""),
    ("ies", "y"),
    ("ed", ""),
    ("ly", ""),
    ("es", ""),
    ("s", ""),
)


class SuffixStemFilter:
    """Strips common English suffixes, keeping stems of at least two characters."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            yield token.copy_with(stem(token.text))


def stem(word: str) -> str:
    lower = word.lower()
    for suffix, replacement in _SUFFIX_RULES:
        if lower.endswith(suffix) and len(lower) - len(suffix) >= 2:
            return lower[: -len(suffix)] + replacement
    return lower


class AnalyzerPipeline:
    """Composable analyzer pipeline (tokenizer + filters)."""

    def __init__(self, tokenizer: Tokenizer, filters: Sequence[TokenFilter] | None = None) -> None:
        self.tokenizer = tokenizer
        self.filters = list(filters or [])

    def __call__(self, text: str) -> list[Token]:
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        return list(stream)


class KeywordAnalyzer:
    """Treats the entire input as a single token."""

    def __init__(self, *, lowercase: bool = False) -> None:
        self.lowercase = lowercase

    def __call__(self, text: str) -> list[Token]:
        if not text:
            return []
        value = text.lower() if self.lowercase else text
        return [Token(text=value, start_char=0, end_char=len(text))]


def _standard(
    *,
    stopwords: Sequence[str] | None = None,
    stemming: bool = False,
    min_length: int = 1,
) -> Analyzer:
    filters: list[TokenFilter] = [LowercaseFilter(), StopFilter(stopwords)]
    if min_length > 1:
        filters.append(MinLengthFilter(min_length))
    if stemming:
        filters.append(SuffixStemFilter())
    return AnalyzerPipeline(RegexTokenizer(), filters)


def _whitespace(*, lowercase: bool = False) -> Analyzer:
    filters: list[TokenFilter] = [LowercaseFilter()] if lowercase else []
    return AnalyzerPipeline(WhitespaceTokenizer(), filters)


def _english(*, stopwords: Sequence[str] | None = None) -> Analyzer:
    return _standard(stopwords=stopwords, stemming=True)


def _integer(*, padding: int = 10) -> Analyzer:
    def analyze(text: str) -> list[Token]:
        stripped = text.strip()
        if not stripped:
            return []
        try:
            number = int(stripped)
        except ValueError as exc:
            raise ValueError(f"Not an integer: {text!r}") from exc
        sign = "-" if number < 0 else ""
        return [Token(text=f"{sign}{abs(number):0{padding}d}", start_char=0, end_char=len(text))]

    return analyze


_ANALYZER_FACTORIES: dict[str, Callable[..., Analyzer]] = {
    "default": _standard,
    "standard": _standard,
    "english": _english,
    "whitespace": _whitespace,
    "keyword": KeywordAnalyzer,
    "integer": _integer,
}


def available_analyzers() -> list[str]:
    return sorted(_ANALYZER_FACTORIES)


def register_analyzer(name: str, factory: Callable[..., Analyzer]) -> None:
    """Register a custom analyzer factory under ``name``."""
    _ANALYZER_FACTORIES[name.lower()] = factory


def get_analyzer(name: str | None, args: Mapping[str, Any] | None = None) -> Analyzer:
    """Build the analyzer registered under ``name`` with keyword ``args``."""
    normalized = (name or "default").lower()
    factory = _ANALYZER_FACTORIES.get(normalized)
    if factory is None:
        msg = f"Unknown analyzer '{name}'. Available: {available_analyzers()}"
        raise ValueError(msg)
    return factory(**dict(args or {}))


class AnalyzerSession:
    """Scoped analyzer handle.

    Pipelines built during the session are cached by factory and arguments;
    token output carries no state from one call to the next.
    """

    def __init__(self) -> None:
        self._cache: dict[tuple[str, tuple[tuple[str, str], ...]], Analyzer] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def analyze(self, text: Any, factory: str | None, args: Mapping[str, Any] | None = None) -> list[str]:
        """Tokenize ``text``, raising ``AnalyzerError`` on any failure."""
        if self._closed:
            raise AnalyzerError("Analyzer session is closed")
        if isinstance(text, bytes):
            text = text.decode("utf-8", errors="replace")
        elif not isinstance(text, str):
            text = str(text)
        try:
            analyzer = self._resolve(factory, args)
            return [token.text for token in analyzer(text)]
        except AnalyzerError:
            raise
        except Exception as exc:
            raise AnalyzerError(f"Analyzer '{factory}' failed: {exc}") from exc

    def _resolve(self, factory: str | None, args: Mapping[str, Any] | None) -> Analyzer:
        frozen_args = tuple(sorted((name, repr(value)) for name, value in (args or {}).items()))
        key = ((factory or "default").lower(), frozen_args)
        analyzer = self._cache.get(key)
        if analyzer is None:
            analyzer = get_analyzer(factory, args)
            self._cache[key] = analyzer
        return analyzer

    def close(self) -> None:
        self._cache.clear()
        self._closed = True


@contextmanager
def open_analyzer() -> Iterator[AnalyzerSession]:
    """Acquire an analyzer session that is released however the block exits."""
    session = AnalyzerSession()
    try:
        yield session
    finally:
        session.close()
