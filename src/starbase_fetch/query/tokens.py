"""
Query token highlighting.

Tokens come from the wildcard text conditions of a query (e.g.
`[[Has text::~*quick fox*]]`). When the print column asks for it with
the `-hl` output format, matching words in text values are marked.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from starbase_fetch.config import DEFAULT_HIGHLIGHT_TEMPLATE, FetchConfig

MIN_TOKEN_LENGTH = 2

_PATTERN_NOISE = re.compile(r"[~!*?\"()+<>]")


class QueryToken:
    """Collected query tokens and their highlighting."""

    def __init__(
        self,
        tokens: Optional[Iterable[str]] = None,
        template: str = DEFAULT_HIGHLIGHT_TEMPLATE,
        format_marker: str = "-hl",
    ):
        self._tokens: dict[str, None] = {}
        self._template = template
        self._format_marker = format_marker
        self._output_format = ""
        self._regex: Optional[re.Pattern] = None
        for token in tokens or []:
            self.add(token)

    @classmethod
    def from_config(cls, config: FetchConfig, tokens: Optional[Iterable[str]] = None) -> "QueryToken":
        """Token collection using the configured template and format marker."""
        token = cls(tokens)
        token.apply_config(config)
        return token

    def apply_config(self, config: FetchConfig) -> None:
        self._template = config.highlight_template
        self._format_marker = config.highlight_format_marker

    def add(self, token: str) -> None:
        token = token.strip().lower()
        if len(token) >= MIN_TOKEN_LENGTH and token not in self._tokens:
            self._tokens[token] = None
            self._regex = None

    def add_from_pattern(self, pattern: str) -> None:
        """Collect the words of a wildcard condition like `~*quick fox*`."""
        for word in _PATTERN_NOISE.sub(" ", pattern).split():
            self.add(word)

    @property
    def tokens(self) -> list[str]:
        return list(self._tokens)

    def set_output_format(self, output_format: str) -> None:
        self._output_format = output_format or ""

    @property
    def enabled(self) -> bool:
        return bool(self._tokens) and self._format_marker in self._output_format

    def highlight(self, text: str) -> str:
        """Mark every whole-word token occurrence in `text`."""
        if not self.enabled:
            return text

        if self._regex is None:
            # Longest first so overlapping tokens prefer the longer match
            words = sorted(self._tokens, key=len, reverse=True)
            self._regex = re.compile(
                r"\b(" + "|".join(re.escape(w) for w in words) + r")\b",
                re.IGNORECASE,
            )

        return self._regex.sub(
            lambda m: self._template.format(token=m.group(0)), text
        )
