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

"""Tag handler invocation.

Resolves a tag occurrence against its :class:`TagDefinition` and runs
the handler.  Synchronous handlers are called directly.  Asynchronous
handlers may return an awaitable, call a legacy ``callback(error,
result)`` passed as third argument, or both; whichever delivers first
through the :class:`CompletionSlot` wins.

The render context is published through a :mod:`contextvars` variable
for the duration of a render, so handlers read it with
:func:`current_context`::

    def title(args, content):
        return current_context().site_title
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import logging
import threading
from collections.abc import Mapping
from types import SimpleNamespace
from typing import Any

from sitetags.tags.errors import HandlerFailure, InvalidArgument, UnknownTag
from sitetags.tags.registry import TagDefinition, TagRegistry
from sitetags.tags.scanner import TagOccurrence

logger = logging.getLogger(__name__)

_current_context: contextvars.ContextVar[Any] = contextvars.ContextVar(
    "sitetags_render_context",
)


def current_context() -> Any:
    """Return the context of the render in progress.

    Raises :class:`LookupError` outside of a render.
    """
    return _current_context.get()


def bind_context(context: Any) -> contextvars.Token:
    """Publish *context* to handlers; mappings become attribute namespaces."""
    if context is None:
        context = SimpleNamespace()
    elif isinstance(context, Mapping):
        if not all(isinstance(key, str) for key in context):
            raise InvalidArgument("context keys must be strings")
        context = SimpleNamespace(**context)
    return _current_context.set(context)


def reset_context(token: contextvars.Token) -> None:
    _current_context.reset(token)


def split_args(raw_args: str) -> list[str]:
    """Split raw tag arguments on whitespace, keeping all other characters."""
    return raw_args.split()


class CompletionSlot:
    """Single-assignment result shared by the return and callback paths.

    The first :meth:`settle` wins; later calls are ignored.  Settling from
    a thread other than the event loop's is marshalled onto the loop.
    """

    def __init__(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._thread = threading.get_ident()
        self._future: asyncio.Future[str] = self._loop.create_future()

    def settle(self, error: Any = None, result: Any = None) -> None:
        """Deliver *result*, or fail with *error* (non-exceptions are wrapped)."""
        if threading.get_ident() != self._thread:
            self._loop.call_soon_threadsafe(self._settle, error, result)
        else:
            self._settle(error, result)

    def _settle(self, error: Any, result: Any) -> None:
        if self._future.done():
            return
        if error is not None:
            if not isinstance(error, BaseException):
                error = RuntimeError(str(error))
            self._future.set_exception(error)
        else:
            self._future.set_result(_coerce(result))

    @property
    def done(self) -> bool:
        return self._future.done()

    async def wait(self) -> str:
        return await self._future


def _coerce(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def resolve(registry: TagRegistry, occurrence: TagOccurrence) -> TagDefinition:
    """Look up the definition for *occurrence* or raise :class:`UnknownTag`."""
    definition = registry.get(occurrence.name)
    if definition is None:
        raise UnknownTag(occurrence.name, offset=occurrence.start, lineno=occurrence.lineno)
    return definition


async def dispatch(
    definition: TagDefinition,
    args: list[str],
    content: str | None = None,
) -> str:
    """Run the handler of *definition* and return its text.

    Any error raised or signalled by the handler is re-raised as
    :class:`HandlerFailure` with the original as ``cause``.
    """
    logger.debug("Dispatching tag %s args=%r", definition.name, args)
    try:
        if definition.is_async:
            return await _call_async(definition, args, content)
        return _call_sync(definition, args, content)
    except Exception as exc:
        raise HandlerFailure(definition.name, exc) from exc


def _call_sync(definition: TagDefinition, args: list[str], content: str | None) -> str:
    result = definition.handler(args, content)
    if inspect.isawaitable(result):
        if inspect.iscoroutine(result):
            result.close()
        logger.warning(
            "Tag %s is registered as synchronous but returned %s; "
            "register it with async=True to await it",
            definition.name, type(result).__name__,
        )
        return ""
    return _coerce(result)


async def _call_async(
    definition: TagDefinition, args: list[str], content: str | None,
) -> str:
    slot = CompletionSlot()
    try:
        if definition.accepts_callback:
            result = definition.handler(args, content, slot.settle)
        else:
            result = definition.handler(args, content)
        if inspect.isawaitable(result):
            result = await result
    except Exception as exc:
        slot.settle(exc)
    else:
        # Callback-style handlers returning nothing deliver through the callback.
        if not (definition.accepts_callback and result is None):
            slot.settle(None, result)
    return await slot.wait()
