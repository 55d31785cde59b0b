"""Tests for transform plugins and custom transforms."""

import json
import textwrap
from pathlib import Path

import pytest

from deminify.core.position_map import Position, PositionMap
from deminify.errors import MapUnavailableError, NotFoundError, ParseError, TransformScriptError
from deminify.plugins import (
    PluginChain,
    TransformContext,
    TransformPlugin,
    VisitorPlugin,
    apply_custom_transform,
    apply_visitor,
    clean_basename,
    get_output_paths,
    load_transform_plugin,
)


def rename(old: str, new: str, priority: int = 100) -> VisitorPlugin:
    """Plugin renaming every identifier ``old`` to ``new``."""

    def handle(node, context):
        if context.text_of(node) == old:
            return new
        return None

    return VisitorPlugin({"identifier": handle}, name=f"{old}->{new}", priority=priority)


class TestApplyVisitor:
    """Tests for apply_visitor."""

    def test_replaces_and_maps_back(self):
        code = "var a = 1;\nconsole.log(a);"
        context = TransformContext(source_code=code, file_path=Path("app.js"))

        output = apply_visitor(code, rename("a", "renamed"), context)

        assert output.text == "var renamed = 1;\nconsole.log(renamed);"
        assert output.replacements == 2
        assert output.map.resolve(2, 12) == Position(2, 12)
        # tokens after a longer replacement still map to their old columns
        assert output.map.resolve(1, 14) == Position(1, 8)
        assert output.map.sources == ("app.js",)

    def test_replacement_skips_descendants(self):
        code = "f(g(1));"
        seen = []

        def handle_call(node, context):
            seen.append(context.text_of(node))
            return "h()"

        plugin = VisitorPlugin({"call_expression": handle_call})
        output = apply_visitor(code, plugin, TransformContext(source_code=code))

        assert output.text == "h();"
        assert seen == ["f(g(1))"]

    def test_unchanged_text_is_not_counted(self):
        code = "var a = 1;"
        plugin = VisitorPlugin({"identifier": lambda node, context: context.text_of(node)})

        output = apply_visitor(code, plugin, TransformContext(source_code=code))

        assert output.text == code
        assert output.replacements == 0

    def test_multiline_replacement(self):
        code = "x;\ny;"
        plugin = VisitorPlugin({"identifier": lambda node, context: "(\n1)" if context.text_of(node) == "x" else None})

        output = apply_visitor(code, plugin, TransformContext(source_code=code))

        assert output.text == "(\n1);\ny;"
        assert output.map.resolve(2, 0) == Position(1, 0)
        assert output.map.resolve(3, 0) == Position(2, 0)

    def test_unparseable_input(self):
        code = ")))))))))))))))))))))"

        with pytest.raises(ParseError):
            apply_visitor(code, rename("a", "b"), TransformContext(source_code=code))


class TestPluginChain:
    """Tests for PluginChain."""

    def test_plugins_sorted_by_priority(self):
        chain = PluginChain().add_plugin(rename("b", "c", priority=20)).add_plugin(rename("a", "b", priority=10))

        assert [p.priority for p in chain.plugins] == [10, 20]

    @pytest.mark.asyncio
    async def test_run_composes_stage_maps(self):
        code = "var a = 1;\nfoo(a);"
        chain = PluginChain().add_plugin(rename("b", "c", priority=20)).add_plugin(rename("a", "b", priority=10))

        output = await chain.run(TransformContext(source_code=code, file_path=Path("app.js")))

        assert output.text == "var c = 1;\nfoo(c);"
        assert output.replacements == 4
        assert output.map.resolve(2, 4) == Position(2, 4)

    @pytest.mark.asyncio
    async def test_run_with_reformat(self):
        code = "var a=1;foo(a);"
        chain = PluginChain().add_plugin(rename("a", "value"))

        output = await chain.run(TransformContext(source_code=code, file_path=Path("app.js")), reformat=True)

        assert output.text == "var value = 1;\nfoo(value);"
        assert output.map.resolve(2, 4) == Position(1, 12)

    @pytest.mark.asyncio
    async def test_empty_chain_has_no_map(self):
        output = await PluginChain().run(TransformContext(source_code="var a = 1;"))

        assert output.text == "var a = 1;"
        assert output.map is None

    @pytest.mark.asyncio
    async def test_should_run_can_skip(self):
        class Never(TransformPlugin):
            name = "never"

            def visitor(self):
                return {"identifier": lambda node, context: "zzz"}

            def should_run(self, context):
                return False

        output = await PluginChain().add_plugin(Never()).run(TransformContext(source_code="a;"))

        assert output.text == "a;"
        assert output.map is None

    def test_combine_chains(self):
        combined = PluginChain().add_plugin(rename("a", "b", priority=30)) | PluginChain().add_plugin(
            rename("c", "d", priority=5)
        )

        assert [p.priority for p in combined.plugins] == [5, 30]


class TestLoadTransformPlugin:
    """Tests for load_transform_plugin."""

    def write_script(self, tmp_path: Path, body: str) -> Path:
        script = tmp_path / "plugin_script.py"
        script.write_text(textwrap.dedent(body), encoding="utf-8")
        return script

    def test_visitor_dict(self, tmp_path):
        script = self.write_script(tmp_path, """
            def upper(node, context):
                return None

            visitor = {"identifier": upper}
        """)

        plugin = load_transform_plugin(script)

        assert isinstance(plugin, VisitorPlugin)
        assert plugin.name == "plugin_script"
        assert "identifier" in plugin.visitor()

    def test_plugin_subclass(self, tmp_path):
        script = self.write_script(tmp_path, """
            from deminify.plugins import TransformPlugin

            class Renamer(TransformPlugin):
                name = "renamer"

                def visitor(self):
                    return {}
        """)

        assert load_transform_plugin(script).name == "renamer"

    def test_plugin_instance(self, tmp_path):
        script = self.write_script(tmp_path, """
            from deminify.plugins import VisitorPlugin

            plugin = VisitorPlugin({}, name="exported")
        """)

        assert load_transform_plugin(script).name == "exported"

    def test_each_load_is_fresh(self, tmp_path):
        script = self.write_script(tmp_path, """
            from deminify.plugins import VisitorPlugin

            plugin = VisitorPlugin({}, name="fresh")
        """)

        assert load_transform_plugin(script) is not load_transform_plugin(script)

    def test_missing_script(self, tmp_path):
        with pytest.raises(NotFoundError, match="Script not found"):
            load_transform_plugin(tmp_path / "nope.py")

    def test_script_error(self, tmp_path):
        script = self.write_script(tmp_path, "raise RuntimeError('boom')\n")

        with pytest.raises(TransformScriptError, match="boom"):
            load_transform_plugin(script)

    def test_script_without_plugin(self, tmp_path):
        script = self.write_script(tmp_path, "value = 1\n")

        with pytest.raises(TransformScriptError, match="Invalid transform plugin"):
            load_transform_plugin(script)

    def test_non_callable_handler(self, tmp_path):
        script = self.write_script(tmp_path, "visitor = {'identifier': 42}\n")

        with pytest.raises(TransformScriptError, match="callable"):
            load_transform_plugin(script)


class TestOutputPaths:
    """Tests for output naming."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("app.js", "app"),
            ("main.beautified.js", "main"),
            ("main.beautified_deob_v2.js", "main"),
            ("main_deob.js", "main"),
            ("bundle.min.js", "bundle.min"),
        ],
    )
    def test_clean_basename(self, name, expected):
        assert clean_basename(name) == expected

    def test_get_output_paths(self, tmp_path):
        paths = get_output_paths(tmp_path / "app.min.beautified.js", "_clean")

        assert paths.output_path == (tmp_path / "app.min_clean.js").resolve()
        assert paths.map_path == (tmp_path / "app.min_clean.js.map").resolve()


class TestApplyCustomTransform:
    """Tests for apply_custom_transform."""

    SCRIPT = textwrap.dedent("""
        def rename(node, context):
            if context.text_of(node) == "a":
                return "renamed"
            return None

        visitor = {"identifier": rename}
    """)

    @pytest.mark.asyncio
    async def test_writes_output_and_map(self, write_source, config):
        source = "var a=1;console.log(a);"
        target = write_source("app.js", source)
        script = write_source("rename.py", self.SCRIPT)

        result = await apply_custom_transform(target, script, config=config)

        assert result.output_path == target.with_name("app_deob.js").resolve()
        assert result.replacements == 2
        written = result.output_path.read_text(encoding="utf-8")
        assert written == result.code
        assert written.endswith("\n//# sourceMappingURL=app_deob.js.map")

        raw = json.loads(result.map_path.read_text(encoding="utf-8"))
        assert raw["file"] == "app_deob.js"
        assert raw["sources"] == ["app.js"]

        position_map = PositionMap.from_dict(raw)
        for number, line in enumerate(written.split("\n"), start=1):
            if "console.log(renamed)" in line:
                column = line.index("renamed")
                assert position_map.resolve(number, column) == Position(1, source.index("a)"))
                break
        else:
            pytest.fail("transformed call not found")

    @pytest.mark.asyncio
    async def test_custom_suffix(self, write_source, config):
        target = write_source("app.js", "var a=1;")
        script = write_source("rename.py", self.SCRIPT)

        result = await apply_custom_transform(target, script, output_suffix="_v2", config=config)

        assert result.output_path.name == "app_v2.js"
        assert result.map_path.name == "app_v2.js.map"

    @pytest.mark.asyncio
    async def test_missing_target(self, tmp_path, write_source, config):
        script = write_source("rename.py", self.SCRIPT)

        with pytest.raises(NotFoundError):
            await apply_custom_transform(tmp_path / "missing.js", script, config=config)

    @pytest.mark.asyncio
    async def test_target_without_map(self, write_source, config):
        target = write_source("data.json", '{"a": 1}')
        script = write_source("rename.py", self.SCRIPT)

        with pytest.raises(MapUnavailableError):
            await apply_custom_transform(target, script, config=config)
