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

"""Tag expansion engine.

Each :meth:`TagEngine.render` call runs one :class:`RenderPass` through
the phases scanning → matching → dispatching → assembling.  Block
children are rendered before their parent, so a block handler always
receives fully expanded ``content``; sibling tags may run concurrently
but their output is reassembled in document order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from enum import Enum
from typing import Any

from jinja2 import Environment

from sitetags.tags.content import normalize_content
from sitetags.tags.dispatch import bind_context, dispatch, reset_context, resolve, split_args
from sitetags.tags.matcher import InlineTag, MatchedBlock, Node, match_blocks
from sitetags.tags.registry import TagDefinition, TagHandler, TagOptions, TagRegistry
from sitetags.tags.scanner import TagScanner, TextRun

logger = logging.getLogger(__name__)

RenderCallback = Callable[[BaseException | None, str | None], Any]


class RenderPhase(Enum):
    SCANNING = "scanning"
    MATCHING = "matching"
    DISPATCHING = "dispatching"
    ASSEMBLING = "assembling"
    DONE = "done"
    FAILED = "failed"


async def _gather(awaitables: Iterable[Awaitable[str]]) -> list[str]:
    """Run *awaitables* concurrently; cancel the rest once one fails."""
    tasks = [asyncio.ensure_future(aw) for aw in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


class RenderPass:
    """State of a single render call."""

    def __init__(self, engine: TagEngine, document: str, context: Any = None) -> None:
        self.engine = engine
        self.document = document
        self.context = context
        self.phase = RenderPhase.SCANNING

    def _enter(self, phase: RenderPhase) -> None:
        logger.debug("Render phase: %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    async def run(self) -> str:
        token = None
        try:
            token = bind_context(self.context)
            tokens = self.engine.scanner.scan(self.document)
            self._enter(RenderPhase.MATCHING)
            nodes = match_blocks(tokens, self.engine.registry, self.document)
            self._enter(RenderPhase.DISPATCHING)
            parts = await self._render_nodes(nodes)
            self._enter(RenderPhase.ASSEMBLING)
            result = "".join(parts)
        except BaseException:
            self._enter(RenderPhase.FAILED)
            raise
        finally:
            if token is not None:
                reset_context(token)
        self._enter(RenderPhase.DONE)
        return result

    async def _render_nodes(self, nodes: Sequence[Node]) -> list[str]:
        parts = [node.text if isinstance(node, TextRun) else "" for node in nodes]
        tags = [(i, node) for i, node in enumerate(nodes) if not isinstance(node, TextRun)]

        if self.engine.concurrent and len(tags) > 1:
            results = await _gather(self._render_tag(node) for _, node in tags)
        else:
            results = [await self._render_tag(node) for _, node in tags]

        for (i, _), text in zip(tags, results):
            parts[i] = text
        return parts

    async def _render_tag(self, node: InlineTag | MatchedBlock) -> str:
        definition = self._resolve(node)
        if isinstance(node, MatchedBlock):
            inner = await self._render_nodes(node.children)
            content = normalize_content("".join(inner))
            return await dispatch(definition, split_args(node.opening.raw_args), content)

        return await dispatch(definition, split_args(node.occurrence.raw_args))

    def _resolve(self, node: InlineTag | MatchedBlock) -> TagDefinition:
        occurrence = node.opening if isinstance(node, MatchedBlock) else node.occurrence
        return resolve(self.engine.registry, occurrence)


class TagEngine:
    """Expand registered tags in template source.

    Args:
        registry: Tag definitions to resolve names against.
        scanner: Tokenizer to use; defaults to Jinja2 delimiters.
        environment: Take the delimiters from this Jinja2 environment
            (ignored when *scanner* is given).
        concurrent: Let sibling tags run concurrently.  When ``False``
            tags are resolved one at a time in document order.
    """

    def __init__(
        self,
        registry: TagRegistry,
        *,
        scanner: TagScanner | None = None,
        environment: Environment | None = None,
        concurrent: bool = True,
    ) -> None:
        if scanner is None:
            scanner = (
                TagScanner.from_environment(environment) if environment else TagScanner()
            )
        self.registry = registry
        self.scanner = scanner
        self.concurrent = concurrent

    def register(
        self,
        name: str | None = None,
        fn: TagHandler | None = None,
        options: bool | Mapping[str, Any] | TagOptions | None = None,
    ) -> TagDefinition:
        """Shortcut for :meth:`TagRegistry.register`."""
        return self.registry.register(name, fn, options)

    def unregister(self, name: str | None = None) -> None:
        """Shortcut for :meth:`TagRegistry.unregister`."""
        self.registry.unregister(name)

    async def render(
        self,
        document: str,
        context: Any = None,
    ) -> str:
        """Expand every tag in *document* and return the result.

        *context* is exposed to handlers via
        :func:`~sitetags.tags.dispatch.current_context`.  A callable that
        is not a mapping is taken as a legacy ``callback(error, result)``
        instead; it is called before this coroutine returns or raises.

        Raises :class:`~sitetags.tags.errors.TagError` subclasses.  No
        partial output is produced on failure.
        """
        callback: RenderCallback | None = None
        if callable(context) and not isinstance(context, Mapping):
            callback, context = context, None

        logger.debug("Rendering document (%d chars)", len(document))
        try:
            result = await RenderPass(self, document, context).run()
        except Exception as exc:
            if callback is not None:
                callback(exc, None)
            raise
        if callback is not None:
            callback(None, result)
        return result

    def render_sync(self, document: str, context: Any = None) -> str:
        """Blocking :meth:`render` for callers without a running event loop."""
        return asyncio.run(self.render(document, context))
