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

"""Error taxonomy for tag registration and rendering.

Every error carries a ``kind`` discriminator so callers can match on it
without importing the concrete classes::

    try:
        await engine.render(source)
    except TagError as exc:
        if exc.kind == "UnknownTag" and exc.name == "test":
            ...
"""

from __future__ import annotations


class TagError(Exception):
    """Base class for all tag engine errors."""

    kind = "TagError"


class InvalidArgument(TagError, ValueError):
    """Bad registration call (missing name, non-callable handler, ...)."""

    kind = "InvalidArgument"


class _PositionedError(TagError):
    def __init__(
        self,
        message: str,
        name: str | None = None,
        offset: int | None = None,
        lineno: int | None = None,
    ) -> None:
        if lineno is not None:
            message = f"{message} (line {lineno})"
        super().__init__(message)
        self.name = name
        self.offset = offset
        self.lineno = lineno


class UnknownTag(_PositionedError):
    """The document references a tag name that is not registered."""

    kind = "UnknownTag"

    def __init__(
        self, name: str, offset: int | None = None, lineno: int | None = None,
    ) -> None:
        super().__init__(f"unknown block tag: {name}", name, offset, lineno)


class MalformedTemplate(_PositionedError):
    """Unbalanced or mismatched block nesting, or an unterminated directive."""

    kind = "MalformedTemplate"


class HandlerFailure(TagError):
    """A tag handler raised or signalled an error.

    The original exception is kept on ``cause`` and chained as
    ``__cause__``.
    """

    kind = "HandlerFailure"

    def __init__(self, name: str, cause: BaseException) -> None:
        super().__init__(f"tag '{name}' failed: {cause}")
        self.name = name
        self.cause = cause
