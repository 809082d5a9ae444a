"""OpenGL bindings generator for Zig.

Resolves the Khronos gl.xml registry down to the features required by one
api/version/profile/extension selection and emits a single self-contained
`gl.zig` module with a runtime-loadable dispatch table.

Usage:
    python glgen.py --api gl --version 4.1 --profile core --output gl.zig
    python glgen.py --list-extensions --api gles2 --filter OES
"""

import argparse
import re
import sys
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import NamedTuple

PROJECT_ROOT = Path(__file__).parent
DEFAULT_GL_XML = PROJECT_ROOT / "deps" / "gl.xml"
DEFAULT_OUTPUT = Path("gl.zig")


# ===--- CLI config contracts ---=== #


class GLVersion(NamedTuple):
    major: int
    minor: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class GenerateConfig:
    api: str
    version: GLVersion
    profile: str | None
    extensions: frozenset[str]
    all_extensions: bool
    preserve_names: bool
    gl_xml: Path
    output: Path


@dataclass(frozen=True)
class DiscoveryConfig:
    command: str
    api: str
    filter_text: str | None
    info_extension: str | None
    gl_xml: Path


VALID_ERROR_CODES = {
    "INVALID_API",
    "INVALID_VERSION",
    "MISSING_VERSION",
    "INVALID_PROFILE",
    "INVALID_EXTENSION_NAME",
    "CONFLICT_EXT_FLAGS",
    "CONFLICT_GENERATE_DISCOVERY",
    "FILTER_WITHOUT_LIST",
    "PATH_NOT_FOUND",
}
KNOWN_APIS = ("gl", "gles1", "gles2", "glsc2")
_VERSION_RE = re.compile(r"^(\d+)\.(\d+)$")
_PROFILE_RE = re.compile(r"^[a-z][a-z0-9_]*$")
_EXT_NAME_RE = re.compile(r"^GL_[A-Za-z0-9]+_[A-Za-z0-9_]+$")


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def parse_version(raw: str) -> GLVersion:
    match = _VERSION_RE.match(raw)
    if match is None:
        raise ConfigError(
            "INVALID_VERSION",
            f"Invalid OpenGL version: {raw}",
            "Use MAJOR.MINOR, for example 3.3 or 4.6.",
        )
    return GLVersion(int(match.group(1)), int(match.group(2)))


def validate_api(api: str) -> str:
    if api in KNOWN_APIS:
        return api
    raise ConfigError(
        "INVALID_API",
        f"Unknown api: {api}",
        f"Use one of: {', '.join(KNOWN_APIS)}.",
    )


def validate_profile(profile: str) -> str:
    if _PROFILE_RE.match(profile):
        return profile
    raise ConfigError(
        "INVALID_PROFILE",
        f"Invalid profile name: {profile}",
        "Profiles are lowercase names such as core, compatibility or common.",
    )


def validate_extension_name(name: str) -> str:
    if _EXT_NAME_RE.match(name):
        return name
    raise ConfigError(
        "INVALID_EXTENSION_NAME",
        f"Invalid extension name: {name}",
        "Extension names must match GL_<VENDOR>_<name> (for example GL_KHR_debug).",
    )


def validate_path_exists(
    path: Path | None, flag: str, suggestion: str | None = None
) -> Path:
    if path is None:
        raise ConfigError(
            "PATH_NOT_FOUND",
            f"{flag} is required: no path provided.",
            suggestion or f"Pass the path explicitly: {flag} /path/to/resource",
        )
    if path.exists():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Path for {flag} does not exist: {path}",
        suggestion or "Provide an existing path for this flag.",
    )


_GL_XML_HINT = (
    "Download the registry:\n"
    "  curl -o deps/gl.xml https://raw.githubusercontent.com/KhronosGroup/OpenGL-Registry/main/xml/gl.xml\n"
    "Or pass a custom path: --gl-xml /your/path/to/gl.xml"
)


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate OpenGL bindings for Zig")

    parser.add_argument("--api", type=str, default="gl")
    parser.add_argument("--version", type=str, default=None)
    parser.add_argument("--profile", type=str, default=None)

    ext_group = parser.add_mutually_exclusive_group()
    ext_group.add_argument("--ext", action="append", nargs="+", default=None)
    ext_group.add_argument("--all-extensions", action="store_true", default=False)

    parser.add_argument("--preserve-names", action="store_true", default=False)
    parser.add_argument("--gl-xml", type=Path, default=DEFAULT_GL_XML)
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT)

    discovery_group = parser.add_mutually_exclusive_group()
    discovery_group.add_argument("--list-versions", action="store_true", default=False)
    discovery_group.add_argument(
        "--list-extensions", action="store_true", default=False
    )
    discovery_group.add_argument("--info", type=str, default=None)

    parser.add_argument("--filter", type=str, default=None)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def normalize_extensions(raw_extensions: object) -> tuple[str, ...]:
    if raw_extensions is None:
        return tuple()
    if not isinstance(raw_extensions, list):
        raise ConfigError(
            "INVALID_EXTENSION_NAME",
            f"Invalid --ext value type: {type(raw_extensions).__name__}",
            "Pass extension names as --ext GL_VENDOR_name.",
        )

    normalized: list[str] = []
    for entry in raw_extensions:
        if isinstance(entry, str):
            normalized.append(entry)
            continue
        if isinstance(entry, list):
            for name in entry:
                if not isinstance(name, str):
                    raise ConfigError(
                        "INVALID_EXTENSION_NAME",
                        f"Invalid extension name type: {type(name).__name__}",
                        "Pass extension names as --ext GL_VENDOR_name.",
                    )
                normalized.append(name)
            continue
        raise ConfigError(
            "INVALID_EXTENSION_NAME",
            f"Invalid --ext entry type: {type(entry).__name__}",
            "Pass extension names as --ext GL_VENDOR_name.",
        )

    return tuple(normalized)


def validate_config(args: argparse.Namespace) -> GenerateConfig | DiscoveryConfig:
    raw_extensions = normalize_extensions(args.ext)
    has_generate_input = bool(
        args.version
        or args.profile
        or raw_extensions
        or args.all_extensions
        or args.preserve_names
    )
    has_discovery_command = bool(
        args.list_versions or args.list_extensions or args.info
    )

    if args.filter and not args.list_extensions:
        raise ConfigError(
            "FILTER_WITHOUT_LIST",
            "--filter requires --list-extensions.",
            "Add --list-extensions or remove --filter.",
        )

    if has_generate_input and has_discovery_command:
        raise ConfigError(
            "CONFLICT_GENERATE_DISCOVERY",
            "Generate flags cannot be combined with discovery flags.",
            "Choose either generate mode or one discovery command.",
        )

    if raw_extensions and args.all_extensions:
        raise ConfigError(
            "CONFLICT_EXT_FLAGS",
            "Cannot combine --ext with --all-extensions.",
            "Use --ext with one or more names, or --all-extensions.",
        )

    api = validate_api(args.api)

    if has_discovery_command:
        gl_xml = validate_path_exists(args.gl_xml, "--gl-xml", _GL_XML_HINT)
        if args.list_versions:
            command = "list-versions"
        elif args.list_extensions:
            command = "list-extensions"
        else:
            command = "info"

        info_extension = (
            validate_extension_name(args.info) if args.info is not None else None
        )
        return DiscoveryConfig(
            command=command,
            api=api,
            filter_text=args.filter,
            info_extension=info_extension,
            gl_xml=gl_xml,
        )

    if args.version is None:
        raise ConfigError(
            "MISSING_VERSION",
            "Generate mode requires --version.",
            "Pass --version MAJOR.MINOR, for example --version 4.6.",
        )

    version = parse_version(args.version)
    profile = validate_profile(args.profile) if args.profile is not None else None
    gl_xml = validate_path_exists(args.gl_xml, "--gl-xml", _GL_XML_HINT)
    extensions = (
        frozenset(validate_extension_name(name) for name in raw_extensions)
        if raw_extensions
        else frozenset()
    )

    return GenerateConfig(
        api=api,
        version=version,
        profile=profile,
        extensions=extensions,
        all_extensions=bool(args.all_extensions),
        preserve_names=bool(args.preserve_names),
        gl_xml=gl_xml,
        output=args.output,
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig | DiscoveryConfig:
    return validate_config(parse_args(argv))


# ===--- Static tables ---=== #


class TypeInfo(NamedTuple):
    """One TypeTable row.

    `preserved_type` is the representation used when registry names are
    preserved (function pointer types spell their parameters with GL names);
    None means the representation is the same in both naming modes.
    """

    key: str
    name: str
    zig_type: str
    preserved_type: str | None
    dependencies: tuple[str, ...]
    ordinal: int

    def output_name(self, preserve_names: bool) -> str:
        return self.key.replace(" ", "_") if preserve_names else self.name

    def output_type(self, preserve_names: bool) -> str:
        if preserve_names and self.preserved_type is not None:
            return self.preserved_type
        return self.zig_type


_DEBUGPROC_TYPE = (
    '?*const fn (source: Enum, @"type": Enum, id: Uint, severity: Enum, '
    "length: Sizei, message: [*:0]const Char, userParam: ?*const anyopaque) "
    "callconv(.C) void"
)
_DEBUGPROC_PRESERVED_TYPE = (
    '?*const fn (source: GLenum, @"type": GLenum, id: GLuint, severity: GLenum, '
    "length: GLsizei, message: [*:0]const GLchar, userParam: ?*const anyopaque) "
    "callconv(.C) void"
)
_DEBUGPROCAMD_TYPE = (
    "?*const fn (id: Uint, category: Enum, severity: Enum, length: Sizei, "
    "message: [*:0]const Char, userParam: ?*anyopaque) callconv(.C) void"
)
_DEBUGPROCAMD_PRESERVED_TYPE = (
    "?*const fn (id: GLuint, category: GLenum, severity: GLenum, length: GLsizei, "
    "message: [*:0]const GLchar, userParam: ?*anyopaque) callconv(.C) void"
)
_DEBUGPROC_DEPENDENCIES = ("GLenum", "GLuint", "GLsizei", "GLchar")

# Row order is the emission order of type declarations.
_TYPE_ROWS: tuple[tuple[str, str, str, str | None, tuple[str, ...]], ...] = (
    ("GLbyte", "Byte", "i8", None, ()),
    ("GLubyte", "Ubyte", "u8", None, ()),
    ("GLshort", "Short", "c_short", None, ()),
    ("GLushort", "Ushort", "c_ushort", None, ()),
    ("GLint", "Int", "c_int", None, ()),
    ("GLuint", "Uint", "c_uint", None, ()),
    ("GLint64", "Int64", "i64", None, ()),
    ("GLint64EXT", "Int64EXT", "i64", None, ()),
    ("GLuint64", "Uint64", "u64", None, ()),
    ("GLuint64EXT", "Uint64EXT", "u64", None, ()),
    ("GLintptr", "Intptr", "isize", None, ()),
    ("GLintptrARB", "IntptrARB", "isize", None, ()),
    ("GLhalf", "Half", "c_ushort", None, ()),
    ("GLhalfARB", "HalfARB", "c_ushort", None, ()),
    ("GLhalfNV", "HalfNV", "c_ushort", None, ()),
    ("GLfloat", "Float", "f32", None, ()),
    ("GLdouble", "Double", "f64", None, ()),
    ("GLfixed", "Fixed", "i32", None, ()),
    ("GLboolean", "Boolean", "u8", None, ()),
    ("GLchar", "Char", "u8", None, ()),
    ("GLcharARB", "CharARB", "u8", None, ()),
    ("GLbitfield", "Bitfield", "c_uint", None, ()),
    ("GLenum", "Enum", "c_uint", None, ()),
    ("GLsizei", "Sizei", "c_int", None, ()),
    ("GLsizeiptr", "Sizeiptr", "isize", None, ()),
    ("GLsizeiptrARB", "SizeiptrARB", "isize", None, ()),
    ("GLclampf", "Clampf", "f32", None, ()),
    ("GLclampd", "Clampd", "f64", None, ()),
    ("GLclampx", "Clampx", "i32", None, ()),
    ("GLsync", "Sync", "?*opaque {}", None, ()),
    (
        "GLDEBUGPROC",
        "DebugProc",
        _DEBUGPROC_TYPE,
        _DEBUGPROC_PRESERVED_TYPE,
        _DEBUGPROC_DEPENDENCIES,
    ),
    (
        "GLDEBUGPROCARB",
        "DebugProcARB",
        _DEBUGPROC_TYPE,
        _DEBUGPROC_PRESERVED_TYPE,
        _DEBUGPROC_DEPENDENCIES,
    ),
    (
        "GLDEBUGPROCKHR",
        "DebugProcKHR",
        _DEBUGPROC_TYPE,
        _DEBUGPROC_PRESERVED_TYPE,
        _DEBUGPROC_DEPENDENCIES,
    ),
    (
        "GLDEBUGPROCAMD",
        "DebugProcAMD",
        _DEBUGPROCAMD_TYPE,
        _DEBUGPROCAMD_PRESERVED_TYPE,
        _DEBUGPROC_DEPENDENCIES,
    ),
    ("struct _cl_context", "ClContextARB", "opaque {}", None, ()),
    ("struct _cl_event", "ClEventARB", "opaque {}", None, ()),
    ("GLeglClientBufferEXT", "EglClientBufferEXT", "?*anyopaque", None, ()),
    ("GLeglImageOES", "EglImageOES", "?*anyopaque", None, ()),
    (
        "GLhandleARB",
        "HandleARB",
        'if (@import("builtin").os.tag == .macos) ?*anyopaque else c_uint',
        None,
        (),
    ),
    ("GLvdpauSurfaceNV", "VdpauSurfaceNV", "Intptr", "GLintptr", ("GLintptr",)),
    ("GLVULKANPROCNV", "VulkanProcNV", "?*const fn () callconv(.C) void", None, ()),
)

TYPE_TABLE: dict[str, TypeInfo] = {
    row[0]: TypeInfo(*row, ordinal=ordinal) for ordinal, row in enumerate(_TYPE_ROWS)
}

SPECIAL_NUMBERS: tuple[str, ...] = (
    "GL_ZERO",
    "GL_ONE",
    "GL_FALSE",
    "GL_TRUE",
    "GL_NONE",
    "GL_NONE_OES",
    "GL_NO_ERROR",
    "GL_INVALID_INDEX",
    "GL_ALL_PIXELS_AMD",
    "GL_TIMEOUT_IGNORED",
    "GL_TIMEOUT_IGNORED_APPLE",
    # GL_VERSION_ES_C*_1_* are C preprocessor macros, not constants.
    "GL_UUID_SIZE_EXT",
    "GL_LUID_SIZE_EXT",
)
"""Special-number constants in emission order. Not alphabetical."""

SPECIAL_NUMBER_ORDINALS: dict[str, int] = {
    key: ordinal for ordinal, key in enumerate(SPECIAL_NUMBERS)
}

SPECIAL_NUMBERS_GROUP = "SpecialNumbers"

CONSTANT_KINDS: tuple[str, ...] = ("special-number", "bitmask", "enum", "other")
_CONSTANT_KIND_RANK = {kind: rank for rank, kind in enumerate(CONSTANT_KINDS)}

# Module-level declarations of the emitted binding that parameters must not shadow.
RESERVED_DECLARATIONS: tuple[str, ...] = (
    "std",
    "root",
    "about",
    "makeDispatchTableCurrent",
    "getCurrentDispatchTable",
    "extensionSupported",
    "Extension",
    "DispatchTable",
    "Proc",
    "issueCommand",
    "defaultIssueCommand",
    "ReturnTypeOfCommand",
)

# lib/std/zig/tokenizer.zig keywords and lib/std/zig/primitives.zig names.
ZIG_RESERVED = frozenset(
    {
        "_",
        "addrspace",
        "align",
        "allowzero",
        "and",
        "anyframe",
        "anytype",
        "asm",
        "async",
        "await",
        "break",
        "callconv",
        "catch",
        "comptime",
        "const",
        "continue",
        "defer",
        "else",
        "enum",
        "errdefer",
        "error",
        "export",
        "extern",
        "fn",
        "for",
        "if",
        "inline",
        "linksection",
        "noalias",
        "noinline",
        "nosuspend",
        "opaque",
        "or",
        "orelse",
        "packed",
        "pub",
        "resume",
        "return",
        "struct",
        "suspend",
        "switch",
        "test",
        "threadlocal",
        "try",
        "union",
        "unreachable",
        "usingnamespace",
        "var",
        "volatile",
        "while",
        "anyerror",
        "anyopaque",
        "bool",
        "c_char",
        "c_int",
        "c_long",
        "c_longdouble",
        "c_longlong",
        "c_short",
        "c_uint",
        "c_ulong",
        "c_ulonglong",
        "c_ushort",
        "comptime_float",
        "comptime_int",
        "f128",
        "f16",
        "f32",
        "f64",
        "f80",
        "false",
        "isize",
        "noreturn",
        "null",
        "true",
        "type",
        "undefined",
        "usize",
        "void",
    }
)
_ZIG_INT_TYPE_RE = re.compile(r"^[iu][0-9]+$")
_ZIG_BARE_IDENTIFIER_RE = re.compile(r"^[A-Z_a-z][0-9A-Z_a-z]*$")


def zig_identifier(identifier: str) -> str:
    """Return `identifier` as a Zig identifier, using @"..." when it cannot be bare."""
    if (
        identifier in ZIG_RESERVED
        or _ZIG_INT_TYPE_RE.match(identifier)
        or not _ZIG_BARE_IDENTIFIER_RE.match(identifier)
    ):
        return f'@"{identifier}"'
    return identifier


# ===--- Registry ---=== #


class RegistryError(RuntimeError):
    """The registry is not internally consistent (e.g. a required command is missing)."""


@dataclass(frozen=True)
class ApiInfo:
    """Selection choices advertised by the registry for one api.

    Attributes:
        key: Api key, e.g. "gles2".
        versions: Distinct feature versions, sorted numerically.
        profiles: Distinct profile names used by the api's feature blocks.
        extensions: Extensions whose supported list includes the api.
    """

    key: str
    versions: tuple[str, ...]
    profiles: tuple[str, ...]
    extensions: tuple[str, ...]


@dataclass(frozen=True)
class Registry:
    root: ET.Element
    apis: dict[str, ApiInfo]


def parse_feature_version(number: str) -> GLVersion:
    major_s, _, minor_s = number.strip().partition(".")
    try:
        return GLVersion(int(major_s), int(minor_s or "0"))
    except ValueError as err:
        raise RegistryError(f"Invalid feature version number: {number!r}") from err


def _supported_apis(ext: ET.Element) -> tuple[str, ...]:
    return tuple(
        token.strip() for token in ext.get("supported", "").split("|") if token.strip()
    )


def _supports_api(ext: ET.Element, api: str) -> bool:
    return api in _supported_apis(ext)


def index_api(root: ET.Element, api: str) -> ApiInfo:
    versions: set[str] = set()
    profiles: set[str] = set()
    for feat in root.findall("feature"):
        if feat.get("api") != api:
            continue
        number = feat.get("number")
        if number:
            versions.add(number)
        for block in feat:
            profile = block.get("profile")
            if profile:
                profiles.add(profile)
    extensions = {
        ext.get("name", "")
        for ext in root.findall("extensions/extension")
        if ext.get("name") and _supports_api(ext, api)
    }
    return ApiInfo(
        key=api,
        versions=tuple(sorted(versions, key=parse_feature_version)),
        profiles=tuple(sorted(profiles)),
        extensions=tuple(sorted(extensions)),
    )


def build_registry(root: ET.Element) -> Registry:
    return Registry(root=root, apis={api: index_api(root, api) for api in KNOWN_APIS})


def load_registry(path: Path) -> Registry:
    return build_registry(ET.parse(path).getroot())


# ===--- Resolved feature set ---=== #


@dataclass(frozen=True)
class ResolvedType:
    key: str
    name: str
    type: str


@dataclass(frozen=True)
class ResolvedConstant:
    key: str
    name: str
    value: str
    kind: str


@dataclass(frozen=True)
class ResolvedParam:
    name: str
    type: str


@dataclass(frozen=True)
class ResolvedCommand:
    key: str
    name: str
    params: tuple[ResolvedParam, ...]
    type: str
    optional: bool


@dataclass(frozen=True)
class ResolvedExtension:
    """A requested extension supported by the selected api.

    `commands` holds only the commands this extension introduces, i.e. those
    not already loaded by the base feature chain, sorted by key.
    """

    key: str
    name: str
    commands: tuple[str, ...]


@dataclass(frozen=True)
class ResolvedFeatures:
    """Everything the emitter needs, in emission order.

    Each mapping is keyed by registry identifier and iterates in the order
    the corresponding declarations are emitted.
    """

    types: dict[str, ResolvedType]
    constants: dict[str, ResolvedConstant]
    commands: dict[str, ResolvedCommand]
    extensions: dict[str, ResolvedExtension]


class FeatureSets:
    """Mutable working sets of required type, enum and command names."""

    def __init__(self) -> None:
        self.types: set[str] = set()
        self.constants: set[str] = set()
        self.commands: set[str] = set()

    def _target(self, tag: str) -> set[str] | None:
        if tag == "type":
            return self.types
        if tag == "enum":
            return self.constants
        if tag == "command":
            return self.commands
        return None

    def add(self, item: ET.Element) -> None:
        target = self._target(item.tag)
        name = item.get("name")
        if target is not None and name:
            target.add(name)

    def discard(self, item: ET.Element) -> None:
        target = self._target(item.tag)
        name = item.get("name")
        if target is not None and name:
            target.discard(name)


# ===--- Feature chain ---=== #


def select_features(
    root: ET.Element, api: str, version: GLVersion
) -> list[ET.Element]:
    """Return the api's feature elements at or below version, ascending by version."""
    selected = [
        (parse_feature_version(feat.get("number", "0.0")), feat)
        for feat in root.findall("feature")
        if feat.get("api") == api
    ]
    selected = [entry for entry in selected if entry[0] <= version]
    selected.sort(key=lambda entry: entry[0])
    return [feat for _, feat in selected]


def _profile_scoped_blocks(
    feature: ET.Element, tag: str, profile: str | None
) -> list[ET.Element]:
    return [
        block
        for block in feature.findall(tag)
        if block.get("profile") is None
        or (profile is not None and block.get("profile") == profile)
    ]


def collect_feature_chain(
    root: ET.Element,
    api: str,
    version: GLVersion,
    profile: str | None,
) -> FeatureSets:
    """Apply require then remove blocks of every feature up to version, in order.

    Within one feature all requires happen before any remove, so a later
    feature can remove what an earlier one required (e.g. deprecated
    commands leaving the core profile).

    Args:
        root: Registry XML root element.
        api: Api key, e.g. "gl".
        version: Highest feature version to apply (inclusive).
        profile: Profile whose scoped blocks are applied in addition to the
            unscoped ones, or None for unscoped blocks only.

    Returns:
        FeatureSets of the base feature chain. Empty when no feature matches.
    """
    sets = FeatureSets()
    for feat in select_features(root, api, version):
        for block in _profile_scoped_blocks(feat, "require", profile):
            for item in block:
                sets.add(item)
        for block in _profile_scoped_blocks(feat, "remove", profile):
            for item in block:
                sets.discard(item)
    return sets


# ===--- Extensions ---=== #


RequireSelector = Callable[[ET.Element], bool]


def extension_require_selectors(
    api: str, profile: str | None
) -> tuple[RequireSelector, ...]:
    """Return the independent selector passes for extension require blocks.

    A require block can be scoped on the api axis and the profile axis
    independently, so every combination gets its own pass and the results
    are unioned. Without a requested profile the profile axis is not
    constrained at all.
    """
    if profile is None:
        return (
            lambda req: req.get("api") is None,
            lambda req: req.get("api") == api,
        )
    return (
        lambda req: req.get("api") is None and req.get("profile") is None,
        lambda req: req.get("api") is None and req.get("profile") == profile,
        lambda req: req.get("api") == api and req.get("profile") is None,
        lambda req: req.get("api") == api and req.get("profile") == profile,
    )


def extension_output_name(key: str, preserve_names: bool) -> str:
    return key if preserve_names else key.removeprefix("GL_")


def collect_extensions(
    root: ET.Element,
    api: str,
    profile: str | None,
    requested: Iterable[str],
    sets: FeatureSets,
    preserve_names: bool = False,
) -> list[ResolvedExtension]:
    """Pull requested extensions into the working sets.

    Types and enums are added to `sets` directly. Commands already in the
    base chain stay required and are not listed under the extension; every
    other command becomes one of the extension's optional commands.
    Unknown extensions and extensions not supported by `api` are skipped.

    Args:
        root: Registry XML root element.
        api: Api key the extension must list in its supported attribute.
        profile: Requested profile, or None.
        requested: Requested extension keys, in any order.
        sets: Base feature chain working sets. Mutated.
        preserve_names: Keep registry keys as output names.

    Returns:
        Resolved extensions sorted by output name.
    """
    wanted = frozenset(requested)
    if not wanted:
        return []

    selectors = extension_require_selectors(api, profile)
    base_commands = frozenset(sets.commands)
    resolved: list[ResolvedExtension] = []
    for ext in root.findall("extensions/extension"):
        key = ext.get("name", "")
        if key not in wanted or not _supports_api(ext, api):
            continue
        optional_commands: set[str] = set()
        requires = ext.findall("require")
        for selector in selectors:
            for req in requires:
                if not selector(req):
                    continue
                for item in req:
                    if item.tag != "command":
                        sets.add(item)
                        continue
                    name = item.get("name")
                    if name and name not in base_commands:
                        optional_commands.add(name)
        resolved.append(
            ResolvedExtension(
                key=key,
                name=extension_output_name(key, preserve_names),
                commands=tuple(sorted(optional_commands)),
            )
        )
    resolved.sort(key=lambda ext: ext.name)
    return resolved


# ===--- Type expressions ---=== #

_TYPE_TOKEN_RE = re.compile(r"(?:struct\s+)?[^\s*]+|\*")
_COMMAND_PREFIX_RE = re.compile(r"^gl([A-Z](?:[A-Z](?=[A-Z]|$))*)")


def tokenize_type_expression(expression: str) -> list[str]:
    """Split C declaration text into words and `*` markers.

    `struct <tag>` is kept together as one word (whitespace collapsed).
    The final token is the declared name.
    """
    return [
        re.sub(r"\s+", " ", match.group(0))
        for match in _TYPE_TOKEN_RE.finditer(expression)
    ]


def _type_info(key: str) -> TypeInfo:
    info = TYPE_TABLE.get(key)
    if info is None:
        raise RegistryError(f"Unknown type '{key}' in type expression")
    return info


def parse_type_expression(
    expression: str, preserve_names: bool = False
) -> tuple[str, str | None]:
    """Translate a C declaration into a Zig type.

    The declaration's final token is its name and is ignored. A leading
    `const` is moved after the base type so that every `const` qualifies the
    type accumulated to its left, which matches C's right-to-left reading:

        const GLchar *const*string  ->  [*c]const [*c]const Char

    The first pointer over `void` or an opaque `struct _cl_*` type is a
    nullable single-item pointer; every other pointer is a C pointer.

    Args:
        expression: Declaration text, e.g. "const GLubyte *glGetString".
        preserve_names: Use registry type names instead of renamed ones.

    Returns:
        Tuple of (Zig type string, base type key or None for void).

    Raises:
        RegistryError: If the expression is empty or names a type that is
            not in TYPE_TABLE.
    """
    tokens = tokenize_type_expression(expression)
    if not tokens:
        raise RegistryError(f"Empty type expression: {expression!r}")
    if tokens[0] == "const" and len(tokens) > 1:
        tokens[0], tokens[1] = tokens[1], tokens[0]

    base = tokens[0]
    base_key = None if base == "void" else base
    if "*" not in tokens:
        if base_key is None:
            return "void", None
        return _type_info(base_key).output_name(preserve_names), base_key

    if base_key is None:
        zig_type, pointer = "anyopaque", "?*"
    elif base_key.startswith("struct _cl_"):
        zig_type, pointer = _type_info(base_key).output_name(preserve_names), "?*"
    else:
        zig_type, pointer = _type_info(base_key).output_name(preserve_names), "[*c]"

    for token in tokens[1:-1]:
        if token == "const":
            zig_type = "const " + zig_type
        elif token == "*":
            zig_type = pointer + zig_type
            pointer = "[*c]"
    return zig_type, base_key


# ===--- Commands ---=== #


def command_output_name(key: str, preserve_names: bool = False) -> str:
    """Return the binding name for a command key (glGetString -> getString)."""
    if preserve_names:
        return key
    return _COMMAND_PREFIX_RE.sub(lambda m: m.group(1).lower(), key, count=1)


def _element_text(element: ET.Element) -> str:
    return "".join(element.itertext())


def _declared_type_key(element: ET.Element) -> str | None:
    ptype = element.find("ptype")
    if ptype is None or not ptype.text:
        return None
    return ptype.text.strip()


def parse_command(
    command: ET.Element,
    optional: bool,
    required_types: set[str],
    preserve_names: bool = False,
) -> ResolvedCommand:
    proto = command.find("proto")
    name_el = proto.find("name") if proto is not None else None
    if proto is None or name_el is None or not name_el.text:
        raise RegistryError("Command without a <proto><name> element")
    key = name_el.text.strip()

    declared = _declared_type_key(proto)
    if declared:
        required_types.add(declared)
    return_type, base_key = parse_type_expression(_element_text(proto), preserve_names)
    if base_key:
        required_types.add(base_key)

    params: list[ResolvedParam] = []
    for param in command.findall("param"):
        param_name_el = param.find("name")
        if param_name_el is None or not param_name_el.text:
            raise RegistryError(f"Parameter without a <name> element in {key}")
        declared = _declared_type_key(param)
        if declared:
            required_types.add(declared)
        param_type, base_key = parse_type_expression(
            _element_text(param), preserve_names
        )
        if base_key:
            required_types.add(base_key)
        params.append(ResolvedParam(name=param_name_el.text.strip(), type=param_type))

    return ResolvedCommand(
        key=key,
        name=command_output_name(key, preserve_names),
        params=tuple(params),
        type=return_type,
        optional=optional,
    )


def rename_shadowing_params(
    commands: list[ResolvedCommand],
    reserved: Iterable[str] = RESERVED_DECLARATIONS,
) -> list[ResolvedCommand]:
    """Append `_` to parameter names until none shadows a module-level declaration.

    Declarations are the reserved module names plus every command's output
    name. Parameters never shadow each other across commands, so only the
    declaration set is checked. Running this twice changes nothing.
    """
    declared = set(reserved)
    declared.update(cmd.name for cmd in commands)

    renamed: list[ResolvedCommand] = []
    for cmd in commands:
        params = []
        for param in cmd.params:
            name = param.name
            while name in declared:
                name += "_"
            params.append(param if name == param.name else replace(param, name=name))
        renamed.append(replace(cmd, params=tuple(params)))
    return renamed


def resolve_commands(
    root: ET.Element,
    required: frozenset[str],
    optional: frozenset[str],
    required_types: set[str],
    preserve_names: bool = False,
) -> list[ResolvedCommand]:
    """Parse every selected command, sorted by output name with params renamed.

    Args:
        root: Registry XML root element.
        required: Base feature chain command keys.
        optional: Extension-introduced command keys.
        required_types: Working set of required type keys. Mutated: every
            type referenced by a selected command is added.
        preserve_names: Keep registry names for commands and types.

    Returns:
        Resolved commands sorted by output name.

    Raises:
        RegistryError: If a selected command is not declared in the
            commands section, or its declaration cannot be parsed.
    """
    selected = required | optional
    resolved: list[ResolvedCommand] = []
    seen: set[str] = set()
    for command in root.findall("commands/command"):
        name_el = command.find("proto/name")
        key = name_el.text.strip() if name_el is not None and name_el.text else ""
        if key not in selected or key in seen:
            continue
        seen.add(key)
        resolved.append(
            parse_command(command, key not in required, required_types, preserve_names)
        )

    missing = sorted(selected - seen)
    if missing:
        raise RegistryError(
            f"Commands referenced but not declared in the registry: {', '.join(missing)}"
        )

    resolved.sort(key=lambda cmd: cmd.name)
    return rename_shadowing_params(resolved)


# ===--- Constants ---=== #

_INT_SUFFIX_RE = re.compile(r"[uUlL]+$")


def parse_registry_int(text: str) -> int:
    """Parse an enum value ("0x8B30", "-1", "0xFFFFFFFFFFFFFFFFull") to int."""
    s = text.strip()
    negative = s.startswith("-")
    if negative:
        s = s[1:].strip()
    s = _INT_SUFFIX_RE.sub("", s)
    if s[:2].lower() == "0x":
        value = int(s[2:], 16)
    else:
        value = int(s, 10)
    return -value if negative else value


def format_hex_literal(value: int) -> str:
    """Format value as a Zig hex literal: 0x prefix, uppercase digits, sign kept."""
    sign = "-" if value < 0 else ""
    return f"{sign}0x{abs(value):X}"


def classify_enum_group(block: ET.Element) -> str:
    if block.get("group") == SPECIAL_NUMBERS_GROUP:
        return "special-number"
    if block.get("type") == "bitmask":
        return "bitmask"
    if block.get("start") is not None:
        return "enum"
    return "other"


def constant_output_name(key: str, preserve_names: bool = False) -> str:
    return key if preserve_names else key.removeprefix("GL_")


class _ConstantRow(NamedTuple):
    constant: ResolvedConstant
    numeric_value: int
    group: str
    special_ordinal: int
    api_specific: bool


def _constant_sort_key(row: _ConstantRow) -> tuple:
    kind = row.constant.kind
    rank = _CONSTANT_KIND_RANK[kind]
    if kind == "special-number":
        return (rank, row.special_ordinal, "", 0, "")
    if kind == "enum":
        return (rank, 0, "", row.numeric_value, row.constant.name)
    return (rank, 0, row.group, row.numeric_value, row.constant.name)


def resolve_constants(
    root: ET.Element,
    api: str,
    required: frozenset[str],
    preserve_names: bool = False,
) -> list[ResolvedConstant]:
    """Resolve required enumerants, ordered special < bitmask < enum < other.

    Special numbers follow SPECIAL_NUMBERS; a SpecialNumbers entry missing
    from that table is not a real constant and is skipped. Bitmasks and
    other constants sort by (group, value, name), enums by (value, name).
    Entries restricted to a different api are skipped.

    Args:
        root: Registry XML root element.
        api: Selected api key.
        required: Required enum keys.
        preserve_names: Keep the GL_ prefix in output names.

    Returns:
        Resolved constants in emission order, one per key.

    Raises:
        RegistryError: If a required enum has a missing or malformed value.
    """
    rows: dict[str, _ConstantRow] = {}
    for block in root.findall("enums"):
        block_api = block.get("api")
        if block_api and block_api != api:
            continue
        kind = classify_enum_group(block)
        group = block.get("group") or ""
        for entry in block.findall("enum"):
            key = entry.get("name", "")
            if key not in required:
                continue
            entry_api = entry.get("api")
            if entry_api and entry_api != api:
                continue
            if key in rows and (rows[key].api_specific or not entry_api):
                continue
            special_ordinal = -1
            if kind == "special-number":
                if key not in SPECIAL_NUMBER_ORDINALS:
                    continue
                special_ordinal = SPECIAL_NUMBER_ORDINALS[key]
            value_text = entry.get("value")
            if value_text is None:
                raise RegistryError(f"Enum {key} has no value")
            try:
                numeric_value = parse_registry_int(value_text)
            except ValueError as exc:
                raise RegistryError(
                    f"Enum {key} has malformed value {value_text!r}"
                ) from exc
            rows[key] = _ConstantRow(
                constant=ResolvedConstant(
                    key=key,
                    name=constant_output_name(key, preserve_names),
                    value=format_hex_literal(numeric_value),
                    kind=kind,
                ),
                numeric_value=numeric_value,
                group=group,
                special_ordinal=special_ordinal,
                api_specific=bool(entry_api),
            )

    ordered = sorted(rows.values(), key=_constant_sort_key)
    return [row.constant for row in ordered]


# ===--- Types ---=== #


def resolve_types(
    required: Iterable[str], preserve_names: bool = False
) -> list[ResolvedType]:
    """Close required types over TYPE_TABLE dependencies, in table order.

    Keys outside TYPE_TABLE (khrplatform, C primitives) are dropped.
    """
    pending = list(required)
    seen: set[str] = set()
    infos: list[TypeInfo] = []
    while pending:
        key = pending.pop()
        if key in seen:
            continue
        seen.add(key)
        info = TYPE_TABLE.get(key)
        if info is None:
            continue
        infos.append(info)
        pending.extend(info.dependencies)

    infos.sort(key=lambda info: info.ordinal)
    return [
        ResolvedType(
            key=info.key,
            name=info.output_name(preserve_names),
            type=info.output_type(preserve_names),
        )
        for info in infos
    ]


# ===--- Feature resolution ---=== #


def resolve_features(
    registry: Registry,
    api: str,
    version: str | GLVersion,
    profile: str | None,
    extensions: Iterable[str],
    preserve_names: bool = False,
) -> ResolvedFeatures:
    """Resolve one selection into the ordered feature set consumed by the emitter.

    Runs the base feature chain, pulls in supported requested extensions,
    then resolves commands, constants and types (commands add the types
    their signatures reference before types are closed).

    Args:
        registry: Loaded registry.
        api: Api key, e.g. "gl".
        version: Target version as "MAJOR.MINOR" or GLVersion.
        profile: Profile name, or None.
        extensions: Requested extension keys. Unsupported ones are ignored.
        preserve_names: Keep registry names instead of Zig-style names.

    Returns:
        ResolvedFeatures. Empty mappings when nothing matches the selection.

    Raises:
        RegistryError: If the registry references undeclared commands or
            unknown types.
    """
    if isinstance(version, str):
        version = parse_feature_version(version)
    root = registry.root

    sets = collect_feature_chain(root, api, version, profile)
    resolved_extensions = collect_extensions(
        root, api, profile, extensions, sets, preserve_names
    )
    optional_commands = frozenset(
        key for ext in resolved_extensions for key in ext.commands
    )
    commands = resolve_commands(
        root,
        frozenset(sets.commands),
        optional_commands,
        sets.types,
        preserve_names,
    )
    constants = resolve_constants(root, api, frozenset(sets.constants), preserve_names)
    types = resolve_types(sets.types, preserve_names)

    return ResolvedFeatures(
        types={t.key: t for t in types},
        constants={c.key: c for c in constants},
        commands={c.key: c for c in commands},
        extensions={e.key: e for e in resolved_extensions},
    )


# ===--- Source emitter ---=== #

GENERATOR_NAME = "zig-gl-bindings-gen 0.1.0"

NOTICE: tuple[str, ...] = (
    "// NOTICE",
    "//",
    "// This work uses definitions from the OpenGL XML API Registry",
    "// <https://github.com/KhronosGroup/OpenGL-Registry>.",
    "// Copyright 2013-2020 The Khronos Group Inc.",
    "// Licensed under Apache-2.0.",
    "//",
    "// END OF NOTICE",
)

EXTENSION_DETECTION_INDEXED = "indexed"
EXTENSION_DETECTION_STRING = "string"

API_DISPLAY_NAMES = {
    "gl": "OpenGL",
    "gles1": "OpenGL ES",
    "gles2": "OpenGL ES",
    "glsc2": "OpenGL SC",
}


@dataclass(frozen=True)
class EmitConfig:
    """Display metadata for one emitted binding.

    Attributes:
        api_name: Human-readable target, e.g. "OpenGL 4.1 (Core Profile)".
        version_major: Target major version; selects extension detection.
        version_minor: Target minor version.
        preserve_names: Output uses registry names (affects the GL_ prefix
            handling in extensionSupported and names in initExtension).
        generated_at: Generation time. Naive datetimes are taken as UTC.
    """

    api_name: str
    version_major: int
    version_minor: int
    preserve_names: bool
    generated_at: datetime


def format_api_name(api: str, version: GLVersion, profile: str | None) -> str:
    display = API_DISPLAY_NAMES.get(api, api)
    name = f"{display} {version}"
    if profile:
        name += f" ({profile.capitalize()} Profile)"
    return name


def format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def extension_detection_strategy(version_major: int) -> str:
    """GL 3.0+ lists extensions by index; older contexts return one string."""
    if version_major >= 3:
        return EXTENSION_DETECTION_INDEXED
    return EXTENSION_DETECTION_STRING


def _emit_header(config: EmitConfig) -> list[str]:
    return [
        *NOTICE,
        "",
        "//! OpenGL binding.",
        "",
        'const std = @import("std");',
        'const root = @import("root");',
        "",
        "/// Static information about the OpenGL binding and when/how it was generated.",
        "pub const about = struct {",
        f'    pub const api_name = "{config.api_name}";',
        f"    pub const api_version_major = {config.version_major};",
        f"    pub const api_version_minor = {config.version_minor};",
        "",
        f'    pub const generated_at = "{format_timestamp(config.generated_at)}";',
        "",
        f'    pub const generator_name = "{GENERATOR_NAME}";',
        "};",
        "",
    ]


def _emit_current_dispatch_table() -> list[str]:
    return [
        "/// Makes the specified dispatch table current on the calling thread.",
        "///",
        "/// This function must be called with a valid dispatch table before calling `extensionSupported` or",
        "/// issuing any OpenGL commands from that same thread.",
        "pub fn makeDispatchTableCurrent(dispatch_table: ?*const DispatchTable) void {",
        "    DispatchTable.current = dispatch_table;",
        "}",
        "",
        "/// Returns the dispatch table that is current on the calling thread, or `null` if no dispatch table",
        "/// is current.",
        "pub fn getCurrentDispatchTable() ?*const DispatchTable {",
        "    return DispatchTable.current;",
        "}",
        "",
    ]


def _emit_extension_query(features: ResolvedFeatures, config: EmitConfig) -> list[str]:
    if not features.extensions:
        return []
    prefix = "" if config.preserve_names else '"GL_" ++ '
    lines = [
        "/// Returns `true` if the specified OpenGL extension is supported, `false` otherwise.",
        "pub fn extensionSupported(comptime extension: Extension) bool {",
        f"    return @field(DispatchTable.current.?, {prefix}@tagName(extension));",
        "}",
        "",
        "/// OpenGL extension.",
        "pub const Extension = enum {",
    ]
    for ext in features.extensions.values():
        lines.append(f"    {zig_identifier(ext.name)},")
    lines.append("};")
    lines.append("")
    return lines


def _emit_types(features: ResolvedFeatures) -> list[str]:
    lines = ["//#region Types"]
    for resolved in features.types.values():
        lines.append(f"pub const {zig_identifier(resolved.name)} = {resolved.type};")
    lines.append("//#endregion Types")
    lines.append("")
    return lines


def _emit_constants(features: ResolvedFeatures) -> list[str]:
    lines = ["//#region Constants"]
    for constant in features.constants.values():
        lines.append(f"pub const {zig_identifier(constant.name)} = {constant.value};")
    lines.append("//#endregion Constants")
    lines.append("")
    return lines


def _emit_command(command: ResolvedCommand) -> list[str]:
    params = ", ".join(
        f"{zig_identifier(p.name)}: {p.type}" for p in command.params
    )
    args = ", ".join(zig_identifier(p.name) for p in command.params)
    if len(command.params) > 1:
        args = f" {args} "
    return [
        f"pub fn {zig_identifier(command.name)}({params}) callconv(.C) {command.type} {{",
        f'    return issueCommand("{command.key}", .{{{args}}});',
        "}",
    ]


def _emit_commands(features: ResolvedFeatures) -> list[str]:
    lines = ["//#region Commands"]
    for command in features.commands.values():
        lines.extend(_emit_command(command))
    lines.append("//#endregion Commands")
    lines.append("")
    return lines


def _emit_dispatch_table_fields(features: ResolvedFeatures) -> list[str]:
    lines = ["    //#region Fields"]
    for ext in features.extensions.values():
        lines.append(f"    {zig_identifier(ext.key)}: bool,")
    for command in features.commands.values():
        pointer = "?*const" if command.optional else "*const"
        lines.append(
            f"    {zig_identifier(command.key)}: {pointer} @TypeOf({zig_identifier(command.name)}),"
        )
    lines.append("    //#endregion Fields")
    lines.append("")
    return lines


def _emit_dispatch_table_init(features: ResolvedFeatures) -> list[str]:
    has_extensions = bool(features.extensions)
    if has_extensions:
        result_doc = [
            "    /// Initializes the specified dispatch table. Always returns `true`; use `extensionSupported`",
            "    /// to check which extensions were found.",
        ]
    else:
        result_doc = [
            "    /// Initializes the specified dispatch table. Returns `true` if successful, `false` otherwise.",
        ]
    lines = [
        *result_doc,
        "    ///",
        "    /// This function must be called successfully before passing the dispatch table to",
        "    /// `makeDispatchTableCurrent` or accessing any of fields.",
        "    ///",
        '    /// `loader` is a duck-typed "callable" that takes the prefixed name of an OpenGL command (e.g.',
        "    /// *glClear*) and returns a pointer to the corresponding function. It should be able to be",
        "    /// called in one of the following two ways:",
        "    ///",
        "    /// - `@as(?DispatchTable.Proc, loader(@as([*:0]const u8, prefixed_name)))`",
        "    /// - `@as(?DispatchTable.Proc, loader.getProcAddress(@as([*:0]const u8, prefixed_name)))`",
        "    ///",
    ]
    if has_extensions:
        lines.extend(
            [
                "    /// If `loader` also declares `extensionSupported`, it is asked whether each extension is",
                "    /// supported instead of querying the context:",
                "    ///",
                "    /// - `@as(bool, loader.extensionSupported(@as([:0]const u8, prefixed_name)))`",
                "    ///",
            ]
        )
        load_line = '                        _ = self.initCommand(field_info.name ++ "", loader);'
    else:
        load_line = '                        success &= @intFromBool(self.initCommand(field_info.name ++ "", loader));'
    lines.extend(
        [
            "    /// No references to `loader` are retained after this function returns.",
            "    ///",
            "    /// There is no corresponding `deinit` function.",
            "    pub fn init(self: *DispatchTable, loader: anytype) bool {",
            "        @setEvalBranchQuota(1_000_000);",
        ]
    )
    if not has_extensions:
        lines.append("        var success: u1 = 1;")
    lines.extend(
        [
            "        inline for (@typeInfo(DispatchTable).Struct.fields) |field_info| {",
            "            switch (@typeInfo(field_info.type)) {",
            "                .Pointer => |ptr_info| switch (@typeInfo(ptr_info.child)) {",
            "                    .Fn => {",
            load_line,
            "                    },",
            "                    else => comptime unreachable,",
            "                },",
        ]
    )
    if has_extensions:
        lines.extend(
            [
                "                .Bool => {",
                "                    @field(self, field_info.name) = false;",
                "                },",
                "                .Optional => |opt_info| switch (@typeInfo(opt_info.child)) {",
                "                    .Pointer => |ptr_info| switch (@typeInfo(ptr_info.child)) {",
                "                        .Fn => {",
                "                            @field(self, field_info.name) = null;",
                "                        },",
                "                        else => comptime unreachable,",
                "                    },",
                "                    else => comptime unreachable,",
                "                },",
            ]
        )
    lines.extend(
        [
            "                else => comptime unreachable,",
            "            }",
            "        }",
        ]
    )
    if not has_extensions:
        lines.append("        return success != 0;")
    else:
        for ext in features.extensions.values():
            if not ext.commands:
                lines.append(f'        _ = self.initExtension("{ext.key}", loader);')
                continue
            lines.append(f'        if (self.initExtension("{ext.key}", loader)) {{')
            for key in ext.commands:
                lines.append(f'            _ = self.initCommand("{key}", loader);')
            lines.append("        }")
        lines.append("        return true;")
    lines.append("    }")
    lines.append("")
    return lines


def _emit_init_command() -> list[str]:
    return [
        "    fn initCommand(",
        "        self: *DispatchTable,",
        "        comptime prefixed_name: [:0]const u8,",
        "        loader: anytype,",
        "    ) bool {",
        "        const loader_info = @typeInfo(@TypeOf(loader));",
        "        const loader_is_fn =",
        "            loader_info == .Fn or",
        "            loader_info == .Pointer and @typeInfo(loader_info.Pointer.child) == .Fn;",
        "        const proc_opt: ?DispatchTable.Proc = if (loader_is_fn)",
        "            loader(prefixed_name)",
        "        else",
        "            loader.getProcAddress(prefixed_name);",
        "        if (proc_opt) |proc| {",
        "            @field(self, prefixed_name) = @ptrCast(proc);",
        "            return true;",
        "        } else {",
        "            return @typeInfo(@TypeOf(@field(self, prefixed_name))) == .Optional;",
        "        }",
        "    }",
    ]


def emit_extension_detection(strategy: str, preserve_names: bool) -> list[str]:
    """Return the body of DispatchTable.detectExtension for a detection strategy.

    Both strategies compare whole extension names, never substrings.
    """
    prefix = "GL_" if preserve_names else ""
    if strategy == EXTENSION_DETECTION_INDEXED:
        int_type = "GLint" if preserve_names else "Int"
        return [
            f"        var count: {int_type} = 0;",
            f"        self.glGetIntegerv({prefix}NUM_EXTENSIONS, &count);",
            "        for (0..@intCast(count)) |i| {",
            f"            if (self.glGetStringi({prefix}EXTENSIONS, @intCast(i))) |name| {{",
            "                if (std.mem.orderZ(u8, prefixed_name, name) == .eq) return true;",
            "            }",
            "        }",
            "        return false;",
        ]
    if strategy == EXTENSION_DETECTION_STRING:
        return [
            f"        var names = std.mem.tokenizeScalar(u8, std.mem.span(self.glGetString({prefix}EXTENSIONS)), ' ');",
            "        while (names.next()) |name| {",
            "            if (std.mem.eql(u8, prefixed_name, name)) return true;",
            "        }",
            "        return false;",
        ]
    raise ValueError(f"Unknown extension detection strategy: {strategy!r}")


def _emit_init_extension(config: EmitConfig) -> list[str]:
    """Emit initExtension, which prefers the loader's own extension query.

    A loader (instance, pointer or container type) that declares
    `extensionSupported` is asked directly; otherwise the context is queried
    with the strategy fixed by the target version.
    """
    strategy = extension_detection_strategy(config.version_major)
    return [
        "",
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
        "",
        "    fn loaderHasExtensionQuery(comptime Loader: type) bool {",
        "        const Container = switch (@typeInfo(Loader)) {",
        "            .Pointer => |ptr_info| ptr_info.child,",
        "            else => Loader,",
        "        };",
        "        return switch (@typeInfo(Container)) {",
        '            .Struct, .Union, .Enum, .Opaque => @hasDecl(Container, "extensionSupported"),',
        "            else => false,",
        "        };",
        "    }",
        "",
        "    fn detectExtension(",
        "        self: *const DispatchTable,",
        "        comptime prefixed_name: [:0]const u8,",
        "    ) bool {",
        *emit_extension_detection(strategy, config.preserve_names),
        "    }",
    ]


def _emit_dispatch_table(features: ResolvedFeatures, config: EmitConfig) -> list[str]:
    lines = [
        "/// Holds dynamically loaded OpenGL features.",
        "///",
        "/// This struct is very large; avoid storing instances of it on the stack.",
        "pub const DispatchTable = struct {",
        "    threadlocal var current: ?*const DispatchTable = null;",
        "",
        "    /// An opaque pointer to an external function.",
        "    pub const Proc = *align(@alignOf(fn () callconv(.C) void)) const anyopaque;",
        "",
    ]
    lines.extend(_emit_dispatch_table_fields(features))
    lines.extend(_emit_dispatch_table_init(features))
    lines.extend(_emit_init_command())
    if features.extensions:
        lines.extend(_emit_init_extension(config))
    lines.append("};")
    lines.append("")
    return lines


def _emit_issue_command() -> list[str]:
    return [
        "/// Issues the specified OpenGL command.",
        "///",
        "/// This function is called internally by the OpenGL binding. Its implementation can be overridden",
        "/// by publicly declaring a function named `gl_issueCommand` with a compatible signature in the root",
        "/// source file.",
        "pub fn issueCommand(",
        "    comptime prefixed_name: [:0]const u8,",
        "    args: anytype,",
        ") ReturnTypeOfCommand(prefixed_name) {",
        '    return if (@hasDecl(root, "gl_issueCommand"))',
        "        root.gl_issueCommand(prefixed_name, args)",
        "    else",
        "        defaultIssueCommand(prefixed_name, args);",
        "}",
        "",
        "/// The default implementation of `issueCommand`.",
        "///",
        "/// Overriding implementations can call this function to fall back to the default behavior.",
        "pub fn defaultIssueCommand(",
        "    comptime prefixed_name: [:0]const u8,",
        "    args: anytype,",
        ") ReturnTypeOfCommand(prefixed_name) {",
        "    return if (@typeInfo(@TypeOf(@field(@as(DispatchTable, undefined), prefixed_name))) == .Optional)",
        "        @call(.auto, @field(DispatchTable.current.?, prefixed_name).?, args)",
        "    else",
        "        @call(.auto, @field(DispatchTable.current.?, prefixed_name), args);",
        "}",
        "",
        "/// The return type of the specified OpenGL command.",
        "pub fn ReturnTypeOfCommand(comptime prefixed_name: [:0]const u8) type {",
        "    if (@hasField(DispatchTable, prefixed_name)) {",
        "        return switch (@typeInfo(@TypeOf(@field(@as(DispatchTable, undefined), prefixed_name)))) {",
        "            .Pointer => |ptr_info| switch (@typeInfo(ptr_info.child)) {",
        "                .Fn => |fn_info| fn_info.return_type.?,",
        "                else => comptime unreachable,",
        "            },",
        "            .Bool => {},",
        "            .Optional => |opt_info| switch (@typeInfo(opt_info.child)) {",
        "                .Pointer => |ptr_info| switch (@typeInfo(ptr_info.child)) {",
        "                    .Fn => |fn_info| fn_info.return_type.?,",
        "                    else => comptime unreachable,",
        "                },",
        "                else => comptime unreachable,",
        "            },",
        "            else => comptime unreachable,",
        "        };",
        "    }",
        "    @compileError(\"unknown OpenGL command: '\" ++ prefixed_name ++ \"'\");",
        "}",
    ]


def generate_source(features: ResolvedFeatures, config: EmitConfig) -> str:
    """Render a resolved feature set as one Zig module.

    Section order: notice, about, current dispatch table accessors,
    extension query (only with extensions), types, constants, commands,
    DispatchTable, issueCommand helpers. The output depends only on the
    arguments, so identical inputs give byte-identical text.

    Args:
        features: Resolved feature set from resolve_features.
        config: Display metadata and naming mode.

    Returns:
        Complete Zig source including trailing newline.
    """
    lines: list[str] = []
    lines.extend(_emit_header(config))
    lines.extend(_emit_current_dispatch_table())
    lines.extend(_emit_extension_query(features, config))
    lines.extend(_emit_types(features))
    lines.extend(_emit_constants(features))
    lines.extend(_emit_commands(features))
    lines.extend(_emit_dispatch_table(features, config))
    lines.extend(_emit_issue_command())
    return "\n".join(lines) + "\n"


# ===--- Discovery commands ---=== #


@dataclass(frozen=True)
class VersionSummary:
    """One row of the --list-versions table.

    Counts are cumulative over the base feature chain without a profile,
    so removals in later versions can make them shrink.
    """

    version: str
    constant_count: int
    command_count: int


@dataclass(frozen=True)
class ExtensionSummary:
    """One row of the --list-extensions table.

    Attributes:
        name: Extension key, e.g. "GL_KHR_debug".
        supported: Api keys from the supported attribute, in registry order.
        constant_count: Distinct enums across all require blocks.
        command_count: Distinct commands across all require blocks.
    """

    name: str
    supported: tuple[str, ...]
    constant_count: int
    command_count: int


@dataclass(frozen=True)
class ExtensionDetail:
    summary: ExtensionSummary
    constants: tuple[str, ...]
    commands: tuple[str, ...]


def _ordered_require_names(ext: ET.Element, tag: str) -> tuple[str, ...]:
    seen: dict[str, None] = {}  # ordered set via insertion-order dict
    for req in ext.findall("require"):
        for item in req.findall(tag):
            name = item.get("name")
            if name and name not in seen:
                seen[name] = None
    return tuple(seen)


def _summarize_extension(ext: ET.Element) -> ExtensionSummary:
    return ExtensionSummary(
        name=ext.get("name", ""),
        supported=_supported_apis(ext),
        constant_count=len(_ordered_require_names(ext, "enum")),
        command_count=len(_ordered_require_names(ext, "command")),
    )


def gather_version_summaries(registry: Registry, api: str) -> list[VersionSummary]:
    summaries: list[VersionSummary] = []
    for version in registry.apis[api].versions:
        sets = collect_feature_chain(
            registry.root, api, parse_feature_version(version), None
        )
        summaries.append(
            VersionSummary(
                version=version,
                constant_count=len(sets.constants),
                command_count=len(sets.commands),
            )
        )
    return summaries


def gather_extension_summaries(registry: Registry, api: str) -> list[ExtensionSummary]:
    """Return one summary per extension supporting api, sorted by name."""
    summaries = [
        _summarize_extension(ext)
        for ext in registry.root.findall("extensions/extension")
        if ext.get("name") and _supports_api(ext, api)
    ]
    summaries.sort(key=lambda s: s.name)
    return summaries


def filter_extensions_by_text(
    summaries: list[ExtensionSummary],
    filter_text: str,
) -> list[ExtensionSummary]:
    """Return summaries whose name contains filter_text, case-insensitively."""
    if not filter_text:
        return list(summaries)
    needle = filter_text.lower()
    return [s for s in summaries if needle in s.name.lower()]


def gather_extension_detail(
    registry: Registry, extension_name: str
) -> ExtensionDetail | None:
    for ext in registry.root.findall("extensions/extension"):
        if ext.get("name") == extension_name:
            return ExtensionDetail(
                summary=_summarize_extension(ext),
                constants=_ordered_require_names(ext, "enum"),
                commands=_ordered_require_names(ext, "command"),
            )
    return None


def format_versions_table(
    api_info: ApiInfo, summaries: list[VersionSummary]
) -> str:
    """Return the complete --list-versions output.

        OpenGL (gl) versions in gl.xml:

          1.0     250 constants    306 commands
          ...

          Profiles: compatibility, core
    """
    display = API_DISPLAY_NAMES.get(api_info.key, api_info.key)
    lines = [f"{display} ({api_info.key}) versions in gl.xml:", ""]
    for row in summaries:
        constants_col = f"{row.constant_count} constants"
        lines.append(f"  {row.version:<6} {constants_col:>15}  {row.command_count:>5} commands")
    if api_info.profiles:
        lines.append("")
        lines.append(f"  Profiles: {', '.join(api_info.profiles)}")
    lines.append("")
    return "\n".join(lines)


def format_extensions_table(summaries: list[ExtensionSummary], api: str) -> str:
    """Return the complete --list-extensions output.

    Filtering is not applied here; pre-filter with filter_extensions_by_text.
    """
    lines = [f"{len(summaries)} extensions supporting {api} in gl.xml:", ""]
    if not summaries:
        lines.append("")
        return "\n".join(lines)

    name_width = max(len(s.name) for s in summaries)
    for s in summaries:
        constants_col = f"{s.constant_count} constants"
        commands_col = f"{s.command_count} cmds"
        row = (
            f"  {s.name.ljust(name_width)}  {constants_col:<14} {commands_col:<9}"
            f"  {'|'.join(s.supported)}"
        )
        lines.append(row.rstrip())
    lines.append("")
    return "\n".join(lines)


def format_extension_detail(detail: ExtensionDetail) -> str:
    s = detail.summary
    lines = [s.name, f"  Supported: {', '.join(s.supported) or 'none'}", ""]
    lines.append(f"  Constants ({len(detail.constants)}):")
    for name in detail.constants:
        lines.append(f"    {name}")
    lines.append("")
    lines.append(f"  Commands ({len(detail.commands)}):")
    for name in detail.commands:
        lines.append(f"    {name}")
    lines.append("")
    return "\n".join(lines)


def run_discovery(config: DiscoveryConfig) -> None:
    """Execute the discovery command specified in config and print the result.

    Raises:
        SystemExit(1): When --info names an extension missing from gl.xml.
    """
    registry = load_registry(config.gl_xml)

    if config.command == "list-versions":
        summaries = gather_version_summaries(registry, config.api)
        print(format_versions_table(registry.apis[config.api], summaries), end="")

    elif config.command == "list-extensions":
        summaries = gather_extension_summaries(registry, config.api)
        if config.filter_text is not None:
            summaries = filter_extensions_by_text(summaries, config.filter_text)
        print(format_extensions_table(summaries, config.api), end="")

    elif config.command == "info":
        assert config.info_extension is not None
        detail = gather_extension_detail(registry, config.info_extension)
        if detail is None:
            print(
                f"Error: extension '{config.info_extension}' not found in gl.xml",
                file=sys.stderr,
            )
            raise SystemExit(1)
        print(format_extension_detail(detail), end="")


# ===--- Writer ---=== #


@dataclass(frozen=True)
class FileWriteResult:
    """Result of writing the generated module.

    Attributes:
        path: Absolute path of the written file.
        line_count: Number of newline characters in the written content.
        byte_count: Number of bytes written (UTF-8 encoded).
    """

    path: Path
    line_count: int
    byte_count: int


def write_source(path: Path, content: str) -> FileWriteResult:
    """Write generated source, creating missing parent directories.

    Raises:
        OSError: Propagated directly if the filesystem write fails.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    resolved = path.resolve()
    return FileWriteResult(
        path=resolved,
        line_count=content.count("\n"),
        byte_count=len(resolved.read_bytes()),
    )


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class GenerationCounts:
    """Item counts of one resolved feature set.

    Invariant: required_commands + optional_commands == commands.
    """

    types: int
    constants: int
    commands: int
    required_commands: int
    optional_commands: int
    extensions: int


@dataclass(frozen=True)
class GenerationSummary:
    api_name: str
    target_label: str
    source_label: str
    counts: GenerationCounts
    written: FileWriteResult


def build_target_label(config: GenerateConfig, extensions: Iterable[str]) -> str:
    """Return "gl 4.1 core + GL_A, GL_B" (profile and extensions only when set)."""
    label = f"{config.api} {config.version}"
    if config.profile:
        label += f" {config.profile}"
    if config.all_extensions:
        return f"{label} + all extensions"
    names = sorted(extensions)
    if names:
        label += f" + {', '.join(names)}"
    return label


def build_generation_counts(features: ResolvedFeatures) -> GenerationCounts:
    optional = sum(1 for cmd in features.commands.values() if cmd.optional)
    total = len(features.commands)
    return GenerationCounts(
        types=len(features.types),
        constants=len(features.constants),
        commands=total,
        required_commands=total - optional,
        optional_commands=optional,
        extensions=len(features.extensions),
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    counts = summary.counts
    lines = [
        f"{summary.api_name} binding generated:",
        "",
        f"  Target:     {summary.target_label}",
        f"  Source:     {summary.source_label}",
        f"  Output:     {summary.written.path}",
        "",
        "  Resolved:",
        f"    {'Types:':<12}{counts.types:>6}",
        f"    {'Constants:':<12}{counts.constants:>6}",
    ]
    commands_row = f"    {'Commands:':<12}{counts.commands:>6}"
    if counts.optional_commands:
        commands_row += (
            f"  ({counts.required_commands} required + "
            f"{counts.optional_commands} optional)"
        )
    lines.append(commands_row)
    lines.append(f"    {'Extensions:':<12}{counts.extensions:>6}")
    lines.append("")
    lines.append(
        f"  Written: {summary.written.line_count:,} lines "
        f"({summary.written.byte_count:,} bytes)"
    )
    lines.append("")
    return "\n".join(lines)


def print_generation_summary(summary: GenerationSummary) -> None:
    print(format_generation_summary(summary), end="")


# ===--- Generate pipeline ---=== #


def select_extensions(config: GenerateConfig, api_info: ApiInfo) -> frozenset[str]:
    if config.all_extensions:
        return frozenset(api_info.extensions)
    return config.extensions


def build_emit_config(
    config: GenerateConfig, generated_at: datetime | None = None
) -> EmitConfig:
    return EmitConfig(
        api_name=format_api_name(config.api, config.version, config.profile),
        version_major=config.version.major,
        version_minor=config.version.minor,
        preserve_names=config.preserve_names,
        generated_at=generated_at or datetime.now(timezone.utc),
    )


def run_generate(
    config: GenerateConfig, generated_at: datetime | None = None
) -> FileWriteResult:
    """Execute the complete generation pipeline for a GenerateConfig.

    Stages: parse -> select extensions -> resolve -> emit -> write -> report.
    Unadvertised versions and unsupported extensions only produce warnings.

    Args:
        config: Validated GenerateConfig from build_config.
        generated_at: Timestamp embedded in the output. Defaults to now (UTC).

    Returns:
        FileWriteResult for the written module.

    Raises:
        OSError: gl.xml not readable or filesystem write failure.
        ET.ParseError: Malformed gl.xml.
        RegistryError: gl.xml references undeclared commands or unknown types.
    """
    print(f"Parsing: {config.gl_xml}")
    registry = load_registry(config.gl_xml)
    api_info = registry.apis[config.api]
    print(
        f"  Registry: {len(api_info.versions)} {config.api} versions, "
        f"{len(api_info.extensions)} extensions"
    )

    if str(config.version) not in api_info.versions:
        print(
            f"  Warning: {config.api} {config.version} is not a version advertised "
            f"by gl.xml ({', '.join(api_info.versions) or 'none'})"
        )
    if config.profile and config.profile not in api_info.profiles:
        print(f"  Warning: profile '{config.profile}' is not used by {config.api}")

    extensions = select_extensions(config, api_info)
    skipped = sorted(extensions - frozenset(api_info.extensions))
    if skipped:
        print(f"  Skipping {len(skipped)} unsupported extension(s): {', '.join(skipped)}")

    features = resolve_features(
        registry,
        config.api,
        config.version,
        config.profile,
        extensions,
        preserve_names=config.preserve_names,
    )
    counts = build_generation_counts(features)
    print(
        f"  Resolved: {counts.types} types, {counts.constants} constants, "
        f"{counts.commands} commands, {counts.extensions} extensions"
    )

    emit_config = build_emit_config(config, generated_at)
    result = write_source(config.output, generate_source(features, emit_config))

    print_generation_summary(
        GenerationSummary(
            api_name=emit_config.api_name,
            target_label=build_target_label(config, features.extensions),
            source_label=str(config.gl_xml),
            counts=counts,
            written=result,
        )
    )
    return result


# ===--- Main generation ---=== #


def main():
    try:
        config = build_config()
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}")
        if err.suggestion:
            print(f"Hint: {err.suggestion}")
        raise SystemExit(1) from err

    try:
        if isinstance(config, DiscoveryConfig):
            run_discovery(config)
        else:
            run_generate(config)
    except (OSError, ET.ParseError) as err:
        print(f"Error: {err}")
        raise SystemExit(1) from err
    except RegistryError as err:
        print(f"Registry error: {err}")
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
