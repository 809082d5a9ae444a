from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import pytest

import glgen

ALL_SECTION_MARKERS = (
    "// NOTICE",
    "// END OF NOTICE",
    "//! OpenGL binding.",
    "pub const about = struct {",
    "pub fn makeDispatchTableCurrent(",
    "pub fn getCurrentDispatchTable(",
    "//#region Types",
    "//#region Constants",
    "//#region Commands",
    "pub const DispatchTable = struct {",
    "pub fn issueCommand(",
    "pub fn defaultIssueCommand(",
    "pub fn ReturnTypeOfCommand(",
)


def _generate(
    registry: glgen.Registry,
    make_emit_config: Callable[..., glgen.EmitConfig],
    *,
    api: str = "gl",
    version: str = "3.2",
    profile: str | None = "core",
    extensions: frozenset[str] = frozenset(),
    preserve_names: bool = False,
) -> str:
    features = glgen.resolve_features(
        registry, api, version, profile, extensions, preserve_names=preserve_names
    )
    major, minor = (int(part) for part in version.split("."))
    config = make_emit_config(
        version_major=major, version_minor=minor, preserve_names=preserve_names
    )
    return glgen.generate_source(features, config)


def _lines(text: str) -> list[str]:
    return text.splitlines()


def test_t_01_sections_appear_once_in_order(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    text = _generate(
        registry, make_emit_config, extensions=frozenset({"GL_KHR_debug"})
    )
    markers = (
        *ALL_SECTION_MARKERS[:6],
        "pub fn extensionSupported(",
        "pub const Extension = enum {",
        *ALL_SECTION_MARKERS[6:],
    )

    positions = [text.index(marker) for marker in markers]
    assert positions == sorted(positions)
    for marker in markers:
        assert text.count(marker) == 1, marker
    assert text.endswith("}\n")


def test_t_02_about_struct_reports_target_and_timestamp(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    lines = _lines(_generate(registry, make_emit_config))

    assert '    pub const api_name = "OpenGL 3.2 (Core Profile)";' in lines
    assert "    pub const api_version_major = 3;" in lines
    assert "    pub const api_version_minor = 2;" in lines
    assert '    pub const generated_at = "2024-05-17T08:30:00Z";' in lines
    assert f'    pub const generator_name = "{glgen.GENERATOR_NAME}";' in lines


def test_t_03_output_is_deterministic(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    extensions = frozenset(registry.apis["gl"].extensions)

    first = _generate(registry, make_emit_config, extensions=extensions)
    second = _generate(registry, make_emit_config, extensions=extensions)

    assert first == second


def test_t_04_no_extension_section_without_extensions(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    text = _generate(registry, make_emit_config)

    assert "extensionSupported" not in text.replace(
        "before calling `extensionSupported`", ""
    )
    assert "pub const Extension = enum" not in text
    assert "fn initExtension(" not in text
    assert "        return success != 0;" in _lines(text)


def test_t_05_types_constants_and_commands_are_rendered(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    lines = _lines(_generate(registry, make_emit_config))

    assert "pub const Sync = ?*opaque {};" in lines
    assert "pub const Enum = c_uint;" in lines
    assert "pub const COLOR_BUFFER_BIT = 0x4000;" in lines
    assert "pub const TIMEOUT_IGNORED = 0xFFFFFFFFFFFFFFFF;" in lines
    assert "pub const UNSET_INDEX_EXAMPLE = -0x1;" in lines
    assert "pub fn clear(mask: Bitfield) callconv(.C) void {" in lines
    assert '    return issueCommand("glClear", .{mask});' in lines
    assert "pub fn getString(name: Enum) callconv(.C) [*c]const Ubyte {" in lines
    assert (
        "pub fn shaderSource(shader: Uint, count: Sizei, "
        "string: [*c]const [*c]const Char, length: [*c]const Int) callconv(.C) void {"
    ) in lines
    assert '    return issueCommand("glViewport", .{ x, y, width, height });' in lines


def test_t_06_command_without_params_forwards_empty_tuple(
    make_emit_config: Callable[..., glgen.EmitConfig],
) -> None:
    command = glgen.ResolvedCommand(
        key="glFinish", name="finish", params=(), type="void", optional=False
    )
    features = glgen.ResolvedFeatures(
        types={}, constants={}, commands={"glFinish": command}, extensions={}
    )

    lines = _lines(glgen.generate_source(features, make_emit_config()))

    assert "pub fn finish() callconv(.C) void {" in lines
    assert '    return issueCommand("glFinish", .{});' in lines
    assert "    glFinish: *const @TypeOf(finish)," in lines


def test_t_07_dispatch_table_fields_mark_optional_commands(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    lines = _lines(
        _generate(
            registry,
            make_emit_config,
            extensions=frozenset({"GL_KHR_debug", "GL_ARB_sync"}),
        )
    )

    assert "    GL_ARB_sync: bool," in lines
    assert "    GL_KHR_debug: bool," in lines
    assert "    glClear: *const @TypeOf(clear)," in lines
    assert "    glFenceSync: *const @TypeOf(fenceSync)," in lines
    assert (
        "    glDebugMessageCallback: ?*const @TypeOf(debugMessageCallback)," in lines
    )
    assert lines.index("    GL_KHR_debug: bool,") < lines.index(
        "    glClear: *const @TypeOf(clear),"
    )


def test_t_08_init_with_extensions_always_succeeds_then_loads_extensions(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    lines = _lines(
        _generate(
            registry,
            make_emit_config,
            extensions=frozenset({"GL_KHR_debug", "GL_ARB_sync", "GL_ARB_cl_event"}),
        )
    )

    start = lines.index('        if (self.initExtension("GL_ARB_cl_event", loader)) {')
    assert lines[start - 1] == "        }"
    assert lines[start : start + 8] == [
        '        if (self.initExtension("GL_ARB_cl_event", loader)) {',
        '            _ = self.initCommand("glCreateSyncFromCLeventARB", loader);',
        "        }",
        '        _ = self.initExtension("GL_ARB_sync", loader);',
        '        if (self.initExtension("GL_KHR_debug", loader)) {',
        '            _ = self.initCommand("glDebugMessageCallback", loader);',
        "        }",
        "        return true;",
    ]
    assert '                        _ = self.initCommand(field_info.name ++ "", loader);' in lines
    assert "        if (success == 0) return false;" not in lines
    assert "        var success: u1 = 1;" not in lines
    assert "        return success != 0;" not in lines
    assert "        return false;" not in lines[: lines.index("    fn initCommand(")]


def test_t_09_extension_query_and_enum_in_rename_mode(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    lines = _lines(
        _generate(registry, make_emit_config, extensions=frozenset({"GL_KHR_debug"}))
    )

    assert (
        '    return @field(DispatchTable.current.?, "GL_" ++ @tagName(extension));'
        in lines
    )
    enum_start = lines.index("pub const Extension = enum {")
    assert lines[enum_start + 1 : enum_start + 3] == ["    KHR_debug,", "};"]


def test_t_10_preserve_mode_uses_registry_names(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    lines = _lines(
        _generate(
            registry,
            make_emit_config,
            extensions=frozenset({"GL_KHR_debug", "GL_ARB_cl_event"}),
            preserve_names=True,
        )
    )

    assert "pub const GLbitfield = c_uint;" in lines
    assert "pub const struct__cl_context = opaque {};" in lines
    assert "pub const GL_COLOR_BUFFER_BIT = 0x4000;" in lines
    assert "pub fn glClear(mask: GLbitfield) callconv(.C) void {" in lines
    assert "    glClear: *const @TypeOf(glClear)," in lines
    assert "    GL_KHR_debug," in lines
    assert "    return @field(DispatchTable.current.?, @tagName(extension));" in lines
    assert "        var count: GLint = 0;" in lines
    assert "        self.glGetIntegerv(GL_NUM_EXTENSIONS, &count);" in lines


@pytest.mark.parametrize(
    ("major", "strategy"),
    [(1, "string"), (2, "string"), (3, "indexed"), (4, "indexed")],
)
def test_t_11_extension_detection_strategy_by_major_version(
    major: int, strategy: str
) -> None:
    assert glgen.extension_detection_strategy(major) == strategy


def test_t_12_version_4_emits_indexed_extension_detection(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    text = _generate(
        registry, make_emit_config, version="4.6", extensions=frozenset({"GL_KHR_debug"})
    )

    assert "        var count: Int = 0;" in _lines(text)
    assert "self.glGetIntegerv(NUM_EXTENSIONS, &count);" in text
    assert "self.glGetStringi(EXTENSIONS, @intCast(i))" in text
    assert "std.mem.orderZ(u8, prefixed_name, name) == .eq" in text
    assert "tokenizeScalar" not in text


def test_t_13_version_2_emits_string_extension_detection(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    text = _generate(
        registry,
        make_emit_config,
        api="gles2",
        version="2.0",
        profile=None,
        extensions=frozenset({"GL_KHR_debug"}),
    )

    assert (
        "std.mem.tokenizeScalar(u8, std.mem.span(self.glGetString(EXTENSIONS)), ' ')"
        in text
    )
    assert "std.mem.eql(u8, prefixed_name, name)" in text
    assert "glGetStringi" not in text
    assert "NUM_EXTENSIONS" not in text


def test_t_14_unknown_detection_strategy_raises() -> None:
    with pytest.raises(ValueError):
        glgen.emit_extension_detection("substring", False)


def test_t_15_reserved_identifiers_are_escaped(
    make_emit_config: Callable[..., glgen.EmitConfig],
) -> None:
    command = glgen.ResolvedCommand(
        key="glDebugMessageInsert",
        name="debugMessageInsert",
        params=(
            glgen.ResolvedParam("type", "Enum"),
            glgen.ResolvedParam("id", "Uint"),
        ),
        type="void",
        optional=False,
    )
    features = glgen.ResolvedFeatures(
        types={"GL_fake": glgen.ResolvedType("GL_fake", "u8", "u8")},
        constants={
            "GL_2D": glgen.ResolvedConstant("GL_2D", "2D", "0x600", "enum"),
        },
        commands={command.key: command},
        extensions={},
    )

    lines = _lines(glgen.generate_source(features, make_emit_config()))

    assert 'pub const @"u8" = u8;' in lines
    assert 'pub const @"2D" = 0x600;' in lines
    assert 'pub fn debugMessageInsert(@"type": Enum, id: Uint) callconv(.C) void {' in lines
    assert '    return issueCommand("glDebugMessageInsert", .{ @"type", id });' in lines


def test_t_16_naive_timestamp_is_treated_as_utc() -> None:
    assert glgen.format_timestamp(datetime(2023, 1, 2, 3, 4, 5)) == "2023-01-02T03:04:05Z"


@pytest.mark.parametrize(
    ("api", "profile", "expected"),
    [
        ("gl", "core", "OpenGL 4.1 (Core Profile)"),
        ("gl", None, "OpenGL 4.1"),
        ("gles2", None, "OpenGL ES 4.1"),
        ("glsc2", "common", "OpenGL SC 4.1 (Common Profile)"),
    ],
)
def test_t_17_format_api_name(api: str, profile: str | None, expected: str) -> None:
    assert glgen.format_api_name(api, glgen.GLVersion(4, 1), profile) == expected


def test_t_18_init_without_extensions_reports_base_load_result(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    lines = _lines(_generate(registry, make_emit_config))

    assert "        var success: u1 = 1;" in lines
    assert (
        '                        success &= @intFromBool(self.initCommand(field_info.name ++ "", loader));'
        in lines
    )
    assert "        return success != 0;" in lines
    assert "        return true;" not in lines[: lines.index("    fn initCommand(")]


def test_t_19_init_extension_prefers_loader_extension_query(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    lines = _lines(
        _generate(registry, make_emit_config, extensions=frozenset({"GL_KHR_debug"}))
    )

    start = lines.index("    fn initExtension(")
    assert lines[start : start + 13] == [
        "    fn initExtension(",
        "        self: *DispatchTable,",
        "        comptime prefixed_name: [:0]const u8,",
        "        loader: anytype,",
        "    ) bool {",
        "        const Loader = if (@TypeOf(loader) == type) loader else @TypeOf(loader);",
        "        const supported = if (comptime loaderHasExtensionQuery(Loader))",
        "            @as(bool, loader.extensionSupported(prefixed_name))",
        "        else",
        "            self.detectExtension(prefixed_name);",
        "        @field(self, prefixed_name) = supported;",
        "        return supported;",
        "    }",
    ]
    assert (
        '            .Struct, .Union, .Enum, .Opaque => @hasDecl(Container, "extensionSupported"),'
        in lines
    )
    assert lines.index("    fn detectExtension(") > start
    assert (
        "    /// - `@as(bool, loader.extensionSupported(@as([:0]const u8, prefixed_name)))`"
        in lines
    )


def test_t_20_loader_extension_query_is_not_documented_without_extensions(
    registry: glgen.Registry, make_emit_config: Callable[..., glgen.EmitConfig]
) -> None:
    text = _generate(registry, make_emit_config)

    assert "loader.extensionSupported" not in text
    assert "fn detectExtension(" not in text
    assert "fn loaderHasExtensionQuery(" not in text
