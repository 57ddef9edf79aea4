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

"""Tag handler registry.

Handlers are registered by tag name on an explicit :class:`TagRegistry`
instance; there is no module-level default registry.  Each registration
is resolved once into a :class:`TagDefinition`, which fixes whether the
tag is a block tag (requires ``{% endname %}``) and whether its handler
is asynchronous.

All registered handlers share a uniform calling convention::

    handler(args, content)              # sync, or async returning an awaitable
    handler(args, content, callback)    # async, legacy completion callback

``args`` is the list of whitespace-separated arguments and ``content`` is
the normalized block body (``None`` for inline tags).
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from sitetags.tags.errors import InvalidArgument

logger = logging.getLogger(__name__)

TagHandler = Callable[..., Any]


@dataclass(frozen=True)
class TagOptions:
    """Registration flags for a tag."""

    ends: bool = False
    is_async: bool = False

    @classmethod
    def coerce(cls, options: Any) -> TagOptions:
        """Build options from the accepted shorthand forms.

        ``None`` means an inline synchronous tag, ``True``/``False`` is the
        block-tag shorthand and a mapping may carry ``ends`` and ``async``.
        """
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if isinstance(options, bool):
            return cls(ends=options)
        if isinstance(options, Mapping):
            return cls(
                ends=bool(options.get("ends", False)),
                is_async=bool(options.get("async", options.get("is_async", False))),
            )
        raise InvalidArgument(
            f"options must be a bool, a mapping or TagOptions, not {type(options).__name__}"
        )


@dataclass(frozen=True)
class TagDefinition:
    """A registered tag: name, handler and its resolved calling mode."""

    name: str
    handler: TagHandler = field(repr=False)
    ends: bool = False
    is_async: bool = False
    accepts_callback: bool = False


def _accepts_callback(fn: TagHandler) -> bool:
    """Return True if *fn* takes a third positional (callback) parameter."""
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return False
    positional = 0
    for param in params:
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return True
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            positional += 1
    return positional >= 3


class TagRegistry:
    """In-memory registry of tag definitions.

    Args:
        strict: Reject re-registration of an existing name instead of
            silently replacing the previous definition.
    """

    def __init__(self, strict: bool = False) -> None:
        self.strict = strict
        self._tags: dict[str, TagDefinition] = {}

    def register(
        self,
        name: str | None = None,
        fn: TagHandler | None = None,
        options: bool | Mapping[str, Any] | TagOptions | None = None,
    ) -> TagDefinition:
        """Register *fn* as the handler for ``{% name %}``.

        Raises :class:`InvalidArgument` if *name* is empty or *fn* is not
        callable, or in strict mode if *name* is already registered.
        """
        if not name or not isinstance(name, str):
            raise InvalidArgument("name is required")
        if not callable(fn):
            raise InvalidArgument("fn must be a function")

        opts = TagOptions.coerce(options)
        definition = TagDefinition(
            name=name,
            handler=fn,
            ends=opts.ends,
            is_async=opts.is_async,
            accepts_callback=opts.is_async and _accepts_callback(fn),
        )

        if name in self._tags:
            if self.strict:
                raise InvalidArgument(f"tag '{name}' is already registered")
            logger.debug("Replacing tag definition: %s", name)

        self._tags[name] = definition
        logger.debug(
            "Registered tag: %s (ends=%s, async=%s)", name, opts.ends, opts.is_async,
        )
        return definition

    def unregister(self, name: str | None = None) -> None:
        """Remove a tag.  Unknown names are ignored."""
        if not name or not isinstance(name, str):
            raise InvalidArgument("name is required")
        if self._tags.pop(name, None) is not None:
            logger.debug("Unregistered tag: %s", name)

    def get(self, name: str) -> TagDefinition | None:
        return self._tags.get(name)

    def names(self) -> list[str]:
        return list(self._tags)

    def __contains__(self, name: object) -> bool:
        return name in self._tags

    def __len__(self) -> int:
        return len(self._tags)
