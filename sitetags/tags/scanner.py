# sitetags — tag extension engine for site templates
# Copyright (C) 2024-2026 Dr Horst Herb
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""Tokenizer for the tag sublanguage.

Splits a document into literal :class:`TextRun` pieces and
:class:`TagOccurrence` directives.  Delimiters follow Jinja2 and can be
taken from an existing :class:`jinja2.Environment` so tags use the same
markers as the host templates.

Only the tag syntax is understood here:

* ``{% name args %}`` becomes a :class:`TagOccurrence`
* ``{# ... #}`` comments are dropped
* ``{% raw %}...{% endraw %}`` is emitted as literal text
* ``{%-`` / ``-%}`` strip whitespace before / after the directive
* everything else, ``{{ ... }}`` expressions included, is literal text
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from jinja2 import Environment
from jinja2.defaults import (
    BLOCK_END_STRING,
    BLOCK_START_STRING,
    COMMENT_END_STRING,
    COMMENT_START_STRING,
)

from sitetags.tags.errors import MalformedTemplate

_NAME_RE = re.compile(r"\w+")


@dataclass(frozen=True)
class TextRun:
    """Literal text between directives."""

    text: str
    start: int


@dataclass(frozen=True)
class TagOccurrence:
    """One ``{% name args %}`` directive found in the source."""

    name: str
    raw_args: str
    start: int
    end: int
    lineno: int

    @property
    def is_closing(self) -> bool:
        return len(self.name) > 3 and self.name.startswith("end")

    @property
    def closes(self) -> str | None:
        """Name of the block this directive would close, if any."""
        return self.name[3:] if self.is_closing else None


Token = TextRun | TagOccurrence


def _lineno(source: str, offset: int) -> int:
    return source.count("\n", 0, offset) + 1


class TagScanner:
    """Split template source into text runs and tag occurrences.

    Args:
        block_start: Opening tag delimiter (``{%``).
        block_end: Closing tag delimiter (``%}``).
        comment_start: Opening comment delimiter (``{#``).
        comment_end: Closing comment delimiter (``#}``).
    """

    def __init__(
        self,
        block_start: str = BLOCK_START_STRING,
        block_end: str = BLOCK_END_STRING,
        comment_start: str = COMMENT_START_STRING,
        comment_end: str = COMMENT_END_STRING,
    ) -> None:
        self.block_start = block_start
        self.block_end = block_end
        self.comment_start = comment_start
        self.comment_end = comment_end
        markers = sorted((block_start, comment_start), key=len, reverse=True)
        self._open_re = re.compile("|".join(re.escape(m) for m in markers))
        self._endraw_re = re.compile(
            rf"{re.escape(block_start)}(-?)\s*endraw\s*(-?){re.escape(block_end)}"
        )

    @classmethod
    def from_environment(cls, env: Environment) -> TagScanner:
        """Build a scanner using the delimiters configured on *env*."""
        return cls(
            block_start=env.block_start_string,
            block_end=env.block_end_string,
            comment_start=env.comment_start_string,
            comment_end=env.comment_end_string,
        )

    def scan(self, source: str) -> list[Token]:
        """Return the ordered token list for *source*.

        Raises :class:`MalformedTemplate` for unterminated directives,
        comments or raw blocks and for directives without a valid name.
        """
        tokens: list[Token] = []
        pos = 0
        lstrip_next = False

        while True:
            match = self._open_re.search(source, pos)
            if match is None:
                _add_text(tokens, source[pos:], pos, lstrip=lstrip_next)
                return tokens

            start = match.start()
            is_comment = match.group() == self.comment_start
            closer = self.comment_end if is_comment else self.block_end
            end = source.find(closer, match.end())
            if end < 0:
                what = "comment" if is_comment else "tag"
                raise MalformedTemplate(
                    f"unterminated {what}", offset=start, lineno=_lineno(source, start),
                )

            body = source[match.end():end]
            rstrip_before = body.startswith("-")
            if rstrip_before:
                body = body[1:]
            lstrip_after = body.endswith("-")
            if lstrip_after:
                body = body[:-1]

            _add_text(
                tokens, source[pos:start], pos, lstrip=lstrip_next, rstrip=rstrip_before,
            )
            pos = end + len(closer)
            lstrip_next = lstrip_after
            if is_comment:
                continue

            parts = body.split(None, 1)
            name = parts[0] if parts else ""
            if not _NAME_RE.fullmatch(name):
                raise MalformedTemplate(
                    f"invalid tag name {name!r}",
                    name=name or None,
                    offset=start,
                    lineno=_lineno(source, start),
                )

            if name == "raw":
                close = self._endraw_re.search(source, pos)
                if close is None:
                    raise MalformedTemplate(
                        "unclosed raw block",
                        name="raw",
                        offset=start,
                        lineno=_lineno(source, start),
                    )
                _add_text(
                    tokens,
                    source[pos:close.start()],
                    pos,
                    lstrip=lstrip_after,
                    rstrip=bool(close.group(1)),
                )
                pos = close.end()
                lstrip_next = bool(close.group(2))
                continue

            tokens.append(TagOccurrence(
                name=name,
                raw_args=parts[1].strip() if len(parts) > 1 else "",
                start=start,
                end=pos,
                lineno=_lineno(source, start),
            ))


def _add_text(
    tokens: list[Token],
    text: str,
    start: int,
    *,
    lstrip: bool = False,
    rstrip: bool = False,
) -> None:
    if lstrip:
        stripped = text.lstrip()
        start += len(text) - len(stripped)
        text = stripped
    if rstrip:
        text = text.rstrip()
    if text:
        tokens.append(TextRun(text=text, start=start))
