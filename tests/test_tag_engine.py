"""Tests for sitetags.tags.engine."""

from __future__ import annotations

import asyncio

import pytest
from jinja2 import Environment

from sitetags.tags import (
    HandlerFailure,
    InvalidArgument,
    MalformedTemplate,
    RenderPhase,
    TagEngine,
    TagError,
    TagRegistry,
    UnknownTag,
    current_context,
)
from sitetags.tags.engine import RenderPass


@pytest.fixture
def engine():
    return TagEngine(TagRegistry())


def _lines(*lines):
    return "\n".join(lines)


class TestRegister:
    @pytest.mark.asyncio
    async def test_inline(self, engine):
        engine.register("test", lambda args, content: " ".join(args))

        result = await engine.render("{% test foo.bar | abcdef > fn(a, b, c) < fn() %}")
        assert result == "foo.bar | abcdef > fn(a, b, c) < fn()"

    @pytest.mark.asyncio
    async def test_inline_args_and_content(self, engine):
        calls = []

        def handler(args, content):
            calls.append((args, content))
            return "X"

        engine.register("name", handler)
        assert await engine.render("<{% name a b %}>") == "<X>"
        assert calls == [(["a", "b"], None)]

    @pytest.mark.asyncio
    async def test_async(self, engine):
        async def handler(args, content):
            return " ".join(args)

        engine.register("test", handler, {"async": True})
        assert await engine.render("{% test foo bar %}") == "foo bar"

    @pytest.mark.asyncio
    async def test_block(self, engine):
        engine.register("test", lambda args, content: " ".join(args) + " " + content, True)

        source = _lines("{% test foo bar %}", "test content", "{% endtest %}")
        assert await engine.render(source) == "foo bar test content"

    @pytest.mark.asyncio
    async def test_async_block(self, engine):
        async def handler(args, content):
            return " ".join(args) + " " + content

        engine.register("test", handler, {"ends": True, "async": True})

        source = _lines("{% test foo bar %}", "test content", "{% endtest %}")
        assert await engine.render(source) == "foo bar test content"

    @pytest.mark.asyncio
    async def test_nested(self, engine):
        engine.register("test", lambda args, content: content, True)

        source = _lines(
            "{% test %}",
            "123456",
            "  {% raw %}",
            "  raw",
            "  {% endraw %}",
            "  {% test %}",
            "  test",
            "  {% endtest %}",
            "789012",
            "{% endtest %}",
        )
        result = await engine.render(source)
        assert "".join(result.split()) == "123456rawtest789012"

    @pytest.mark.asyncio
    async def test_nested_async(self, engine):
        async def handler(args, content):
            await asyncio.sleep(0)
            return " ".join(args) + " " + content

        engine.register("test", lambda args, content: content, {"ends": True, "async": True})
        engine.register("async", handler, {"ends": True, "async": True})

        source = _lines(
            "{% test %}",
            "123456",
            "  {% async %}",
            "  async",
            "  {% endasync %}",
            "789012",
            "{% endtest %}",
        )
        result = await engine.render(source)
        assert "".join(result.split()) == "123456async789012"

    @pytest.mark.asyncio
    async def test_strip_indentation(self, engine):
        engine.register("test", lambda args, content: content, True)

        source = _lines("{% test %}", "  test content", "{% endtest %}")
        assert await engine.render(source) == "test content"

    @pytest.mark.asyncio
    async def test_async_callback(self, engine):
        async def handler(args, content, callback):
            callback(None, " ".join(args))
            return ""

        engine.register("test", handler, {"async": True})
        assert await engine.render("{% test foo bar %}") == "foo bar"

    def test_name_is_required(self, engine):
        with pytest.raises(InvalidArgument, match="name is required"):
            engine.register()

    def test_fn_must_be_a_function(self, engine):
        with pytest.raises(InvalidArgument, match="fn must be a function"):
            engine.register("test")


class TestUnregister:
    @pytest.mark.asyncio
    async def test_unregister(self, engine):
        async def handler(args, content):
            return " ".join(args)

        engine.register("test", handler, {"async": True})
        engine.unregister("test")

        with pytest.raises(UnknownTag) as exc_info:
            await engine.render("{% test foo bar %}")
        assert exc_info.value.kind == "UnknownTag"
        assert exc_info.value.name == "test"
        assert "unknown block tag: test" in str(exc_info.value)

    def test_unregister_unknown(self, engine):
        engine.unregister("never-registered")

    def test_name_is_required(self, engine):
        with pytest.raises(InvalidArgument, match="name is required"):
            engine.unregister()


class TestRender:
    @pytest.mark.asyncio
    async def test_context(self, engine):
        engine.register("test", lambda args, content: current_context().foo)
        assert await engine.render("{% test %}", {"foo": "bar"}) == "bar"

    @pytest.mark.asyncio
    async def test_context_in_async_siblings(self, engine):
        async def handler(args, content):
            await asyncio.sleep(0)
            return current_context().foo + args[0]

        engine.register("test", handler, {"async": True})
        result = await engine.render("{% test 1 %}{% test 2 %}", {"foo": "x"})
        assert result == "x1x2"

    @pytest.mark.asyncio
    async def test_callback(self, engine):
        calls = []
        engine.register("test", lambda args, content: "foo")

        result = await engine.render("{% test %}", lambda err, res: calls.append((err, res)))
        assert result == "foo"
        assert calls == [(None, "foo")]

    @pytest.mark.asyncio
    async def test_callback_receives_error(self, engine):
        calls = []

        with pytest.raises(UnknownTag):
            await engine.render("{% test %}", lambda err, res: calls.append((err, res)))
        assert len(calls) == 1
        assert isinstance(calls[0][0], UnknownTag)
        assert calls[0][1] is None

    @pytest.mark.asyncio
    async def test_text_passthrough(self, engine):
        source = "<p>{{ page.title }}</p>\n{# hidden #}plain"
        assert await engine.render(source) == "<p>{{ page.title }}</p>\nplain"

    @pytest.mark.asyncio
    async def test_sibling_order_preserved(self, engine):
        async def handler(args, content):
            # Later siblings finish first.
            await asyncio.sleep(0.01 * (3 - int(args[0])))
            return args[0]

        engine.register("slow", handler, {"async": True})
        result = await engine.render("{% slow 1 %}-{% slow 2 %}-{% slow 3 %}")
        assert result == "1-2-3"

    @pytest.mark.asyncio
    async def test_sequential_mode(self):
        order = []

        async def handler(args, content):
            order.append(args[0])
            await asyncio.sleep(0)
            return args[0]

        engine = TagEngine(TagRegistry(), concurrent=False)
        engine.register("t", handler, {"async": True})
        assert await engine.render("{% t a %}{% t b %}{% t c %}") == "abc"
        assert order == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_children_expanded_before_parent(self, engine):
        seen = []

        def upper(args, content):
            seen.append(content)
            return content.upper()

        engine.register("upper", upper, True)
        engine.register("name", lambda args, content: "bob")

        result = await engine.render("{% upper %}\n  hi {% name %}\n{% endupper %}!")
        assert result == "HI BOB!"
        assert seen == ["hi bob"]

    @pytest.mark.asyncio
    async def test_async_matches_sync_output(self):
        source = _lines("{% wrap a %}", "  x {% item 1 %}", "{% endwrap %}")

        async def async_wrap(args, content):
            return f"[{args[0]}:{content}]"

        def callback_item(args, content, callback):
            asyncio.get_running_loop().call_soon(callback, None, f"<{args[0]}>")

        sync_engine = TagEngine(TagRegistry())
        sync_engine.register("wrap", lambda args, content: f"[{args[0]}:{content}]", True)
        sync_engine.register("item", lambda args, content: f"<{args[0]}>")

        async_engine = TagEngine(TagRegistry())
        async_engine.register("wrap", async_wrap, {"ends": True, "async": True})
        async_engine.register("item", callback_item, {"async": True})

        expected = await sync_engine.render(source)
        assert expected == "[a:x <1>]"
        assert await async_engine.render(source) == expected

    @pytest.mark.asyncio
    async def test_environment_delimiters(self):
        env = Environment(block_start_string="<%", block_end_string="%>")
        engine = TagEngine(TagRegistry(), environment=env)
        engine.register("test", lambda args, content: content.strip(), True)
        assert await engine.render("<% test %> x <% endtest %>{% test %}") == "x{% test %}"

    @pytest.mark.asyncio
    async def test_multiline_child_output_keeps_parent_indent(self, engine):
        seen = []

        def outer(args, content):
            seen.append(content)
            return content

        engine.register("outer", outer, True)
        engine.register("lines", lambda args, content: "a\nb")

        await engine.render("{% outer %}\n  x\n  {% lines %}\n{% endouter %}")
        # Indentation is stripped after children expand.
        assert seen == ["  x\n  a\nb"]

    def test_constructor_options_are_keyword_only(self):
        with pytest.raises(TypeError):
            TagEngine(TagRegistry(), None, None, False)

    def test_render_sync(self, engine):
        engine.register("test", lambda args, content: "sync")
        assert engine.render_sync("[{% test %}]") == "[sync]"


class TestRenderErrors:
    @pytest.mark.asyncio
    async def test_unknown_tag(self, engine):
        with pytest.raises(UnknownTag) as exc_info:
            await engine.render("ok\n{% nope %}")
        assert exc_info.value.name == "nope"
        assert exc_info.value.lineno == 2

    @pytest.mark.asyncio
    async def test_malformed(self, engine):
        engine.register("test", lambda args, content: content, True)
        with pytest.raises(MalformedTemplate) as exc_info:
            await engine.render("{% test %}never closed")
        assert exc_info.value.kind == "MalformedTemplate"
        assert exc_info.value.name == "test"

    @pytest.mark.asyncio
    async def test_handler_failure_aborts_render(self, engine):
        def broken(args, content):
            raise ValueError("bad input")

        engine.register("ok", lambda args, content: "fine")
        engine.register("broken", broken)

        with pytest.raises(HandlerFailure) as exc_info:
            await engine.render("{% ok %}{% broken %}{% ok %}")
        assert isinstance(exc_info.value, TagError)
        assert isinstance(exc_info.value.cause, ValueError)

    @pytest.mark.asyncio
    async def test_failure_in_nested_block(self, engine):
        async def broken(args, content):
            raise RuntimeError("inner")

        engine.register("outer", lambda args, content: content, True)
        engine.register("broken", broken, {"async": True})

        with pytest.raises(HandlerFailure, match="inner"):
            await engine.render("{% outer %}{% broken %}{% endouter %}")


    @pytest.mark.asyncio
    async def test_failure_cancels_pending_siblings(self, engine):
        cancelled = asyncio.Event()

        async def slow(args, content):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return "late"

        async def broken(args, content):
            await asyncio.sleep(0)
            raise RuntimeError("early")

        engine.register("slow", slow, {"async": True})
        engine.register("broken", broken, {"async": True})

        with pytest.raises(HandlerFailure, match="early"):
            await asyncio.wait_for(engine.render("{% slow %}{% broken %}"), timeout=5)
        await asyncio.wait_for(cancelled.wait(), timeout=5)


class TestRenderPass:
    @pytest.mark.asyncio
    async def test_done_phase(self, engine):
        engine.register("test", lambda args, content: "x")
        render_pass = RenderPass(engine, "{% test %}")
        assert await render_pass.run() == "x"
        assert render_pass.phase is RenderPhase.DONE

    @pytest.mark.asyncio
    async def test_bad_context_fails_pass(self, engine):
        engine.register("test", lambda args, content: "x")
        render_pass = RenderPass(engine, "{% test %}", {1: "a"})
        with pytest.raises(InvalidArgument, match="context keys must be strings"):
            await render_pass.run()
        assert render_pass.phase is RenderPhase.FAILED

    @pytest.mark.asyncio
    async def test_failed_phase(self, engine):
        render_pass = RenderPass(engine, "{% test %}")
        with pytest.raises(UnknownTag):
            await render_pass.run()
        assert render_pass.phase is RenderPhase.FAILED
