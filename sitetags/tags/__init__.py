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

"""Custom template tags — ``{% name args %}`` and ``{% name %}...{% endname %}``.

Usage::

    from sitetags.tags import TagEngine, TagRegistry, current_context

    registry = TagRegistry()
    registry.register("quote", lambda args, content: f"<blockquote>{content}</blockquote>", True)
    registry.register("site", lambda args, content: current_context().title)

    engine = TagEngine(registry)
    html = await engine.render(source, {"title": "My site"})
"""

from sitetags.tags.content import normalize_content
from sitetags.tags.dispatch import current_context, split_args
from sitetags.tags.engine import RenderPhase, TagEngine
from sitetags.tags.errors import (
    HandlerFailure,
    InvalidArgument,
    MalformedTemplate,
    TagError,
    UnknownTag,
)
from sitetags.tags.registry import TagDefinition, TagOptions, TagRegistry
from sitetags.tags.scanner import TagScanner

__all__ = [
    "HandlerFailure",
    "InvalidArgument",
    "MalformedTemplate",
    "RenderPhase",
    "TagDefinition",
    "TagEngine",
    "TagError",
    "TagOptions",
    "TagRegistry",
    "TagScanner",
    "UnknownTag",
    "current_context",
    "normalize_content",
    "split_args",
]
