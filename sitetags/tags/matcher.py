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

"""Pair block tags with their end tags.

:func:`match_blocks` turns the flat token list from the scanner into a
tree: literal :class:`TextRun` nodes, :class:`InlineTag` nodes and
:class:`MatchedBlock` nodes whose ``children`` hold everything between
``{% name %}`` and ``{% endname %}``.  Nesting is tracked with an
explicit stack, so same-named blocks inside each other (``test`` inside
``test``) and different-named blocks inside each other both resolve to
the innermost open block first.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from sitetags.tags.errors import MalformedTemplate, UnknownTag
from sitetags.tags.registry import TagRegistry
from sitetags.tags.scanner import TagOccurrence, TextRun, Token


@dataclass(frozen=True)
class InlineTag:
    """A tag without an end directive."""

    occurrence: TagOccurrence

    @property
    def name(self) -> str:
        return self.occurrence.name


@dataclass
class MatchedBlock:
    """A block tag with its end tag and the nodes in between."""

    opening: TagOccurrence
    closing: TagOccurrence
    children: list[Node] = field(default_factory=list)
    inner_text: str = ""

    @property
    def name(self) -> str:
        return self.opening.name


Node = TextRun | InlineTag | MatchedBlock


@dataclass
class _Frame:
    opening: TagOccurrence
    children: list[Node] = field(default_factory=list)


def match_blocks(
    tokens: Sequence[Token], registry: TagRegistry, source: str = "",
) -> list[Node]:
    """Build the node tree for *tokens*.

    *source* is only used to fill in :attr:`MatchedBlock.inner_text`.

    Raises :class:`UnknownTag` for unregistered names and
    :class:`MalformedTemplate` for unexpected, mismatched or missing end
    tags.
    """
    root: list[Node] = []
    stack: list[_Frame] = []

    for token in tokens:
        children = stack[-1].children if stack else root

        if isinstance(token, TextRun):
            children.append(token)
            continue

        if stack and token.closes == stack[-1].opening.name:
            frame = stack.pop()
            block = MatchedBlock(
                opening=frame.opening,
                closing=token,
                children=frame.children,
                inner_text=source[frame.opening.end:token.start],
            )
            (stack[-1].children if stack else root).append(block)
            continue

        definition = registry.get(token.name)
        if definition is None:
            if token.is_closing:
                if stack:
                    expected = f"end{stack[-1].opening.name}"
                    msg = f"mismatched end tag '{token.name}', expected '{expected}'"
                else:
                    msg = f"unexpected end tag '{token.name}'"
                raise MalformedTemplate(
                    msg, name=token.name, offset=token.start, lineno=token.lineno,
                )
            raise UnknownTag(token.name, offset=token.start, lineno=token.lineno)

        if definition.ends:
            stack.append(_Frame(opening=token))
        else:
            children.append(InlineTag(occurrence=token))

    if stack:
        unclosed = stack[-1].opening
        raise MalformedTemplate(
            f"unclosed block tag '{unclosed.name}', expected 'end{unclosed.name}'",
            name=unclosed.name,
            offset=unclosed.start,
            lineno=unclosed.lineno,
        )
    return root
