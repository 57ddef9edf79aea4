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

"""Block body normalization."""

from __future__ import annotations

import re

_INDENT_RE = re.compile(r"[ \t]*")


def normalize_content(text: str) -> str:
    """Strip boundary blank lines and the common indentation of *text*.

    Leading and trailing whitespace-only lines (the newline that follows
    ``{% name %}`` and the one before ``{% endname %}`` included) are
    dropped, then the smallest indentation shared by the non-blank lines
    is removed from every line.  Blank lines inside the body become empty.
    Normalizing an already normalized body returns it unchanged.
    """
    lines = text.split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    if not lines:
        return ""

    indent = min(
        _INDENT_RE.match(line).end() for line in lines if line.strip()
    )
    return "\n".join(line[indent:] if line.strip() else "" for line in lines)
