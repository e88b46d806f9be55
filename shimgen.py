"""Pointerizing C shim and Mojo FFI bindings generator.

Reads the declarations of a flat C API header (raylib.h style) and emits two
synchronized artifacts: a C shim that re-exports every function taking or
returning a struct by value behind a pointer-only signature, and Mojo
bindings that call into the shim (or straight into the library when no
shim is needed).

Usage:
    python shimgen.py generate raylib.h libs/raylib/raylib.mojo build/raylib_shim.c
"""

import os
import argparse
import json
import re
import tempfile
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import NamedTuple

import pyparsing as pp

GENERATOR_NAME = "c-shim-bindings-gen"
DEFAULT_SHIM_SUFFIX = "_pointerized"

EXIT_PARSE_ERROR = 1
EXIT_TYPE_ERROR = 2
EXIT_UNTERMINATED_BLOCK = 3
EXIT_CONFIG_ERROR = 4


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    header: Path
    bindings_out: Path
    shim_out: Path
    shim_suffix: str
    shim_include: str
    type_table: "TypeTable"


VALID_ERROR_CODES = {
    "PATH_NOT_FOUND",
    "INVALID_SUFFIX",
    "INVALID_TYPE_TABLE",
    "OUTPUT_COLLISION",
}
_SUFFIX_RE = re.compile(r"^[A-Za-z0-9_]+$")


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


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
        suggestion or "Provide an existing path for this argument.",
    )


def validate_suffix(suffix: str) -> str:
    if _SUFFIX_RE.match(suffix):
        return suffix
    raise ConfigError(
        "INVALID_SUFFIX",
        f"Invalid shim suffix: {suffix!r}",
        "The suffix is appended to C function names; use letters, digits and '_'.",
    )


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate a pointerized C shim and Mojo bindings from a C header"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser(
        "generate", help="Parse a header and write the bindings and shim files"
    )
    generate.add_argument("header", type=Path)
    generate.add_argument("bindings_out", type=Path)
    generate.add_argument("shim_out", type=Path)
    generate.add_argument("--suffix", type=str, default=DEFAULT_SHIM_SUFFIX)
    generate.add_argument("--include", type=str, default=None)
    generate.add_argument("--type-table", type=Path, default=None)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    try:
        return parser.parse_args(argv)
    except SystemExit as exc:
        # Usage errors share the config exit code; --help still exits 0
        if exc.code:
            raise SystemExit(EXIT_CONFIG_ERROR) from exc
        raise


def validate_config(args: argparse.Namespace) -> GenerateConfig:
    header = validate_path_exists(
        args.header,
        "<header>",
        "Pass the path of the C header to bind, e.g. vendor/raylib/src/raylib.h",
    )
    suffix = validate_suffix(args.suffix)

    if Path(args.bindings_out).resolve() == Path(args.shim_out).resolve():
        raise ConfigError(
            "OUTPUT_COLLISION",
            f"Bindings and shim would both be written to {args.shim_out}",
            "Pass two different output paths.",
        )

    if args.type_table is not None:
        validate_path_exists(args.type_table, "--type-table")
        type_table = load_type_table(args.type_table)
    else:
        type_table = DEFAULT_TYPE_TABLE

    return GenerateConfig(
        header=header,
        bindings_out=args.bindings_out,
        shim_out=args.shim_out,
        shim_suffix=suffix,
        shim_include=args.include or header.name,
        type_table=type_table,
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig:
    return validate_config(parse_args(argv))


# ===--- Constants ---=== #

HOST_TEXT = "UnsafePointer[c_char, ImmutAnyOrigin]"
HOST_VOID = "NoneType"

MOJO_RESERVED = {
    "ref",
    "in",
    "out",
    "var",
    "fn",
    "def",
    "type",
    "mut",
    "owned",
    "read",
    "deinit",
    "inout",
    "self",
    "struct",
    "trait",
    "alias",
    "comptime",
    "raises",
    "return",
    "pass",
    "from",
    "import",
    "with",
    "as",
    "is",
    "not",
    "and",
    "or",
    "if",
    "else",
    "elif",
    "for",
    "while",
    "try",
    "except",
    "raise",
    "del",
    "global",
}

# Names exported by Mojo's ffi module that generated bindings may reference.
FFI_TYPE_NAMES = (
    "c_char",
    "c_short",
    "c_int",
    "c_long",
    "c_long_long",
    "c_size_t",
    "c_float",
    "c_double",
)


# ===--- Errors ---=== #


class GenerateError(Exception):
    """A fatal problem with the input header. No output is written."""

    code = "GENERATE_ERROR"
    exit_code = EXIT_PARSE_ERROR


class ParseError(GenerateError):
    code = "PARSE_ERROR"
    exit_code = EXIT_PARSE_ERROR

    def __init__(
        self,
        line: int,
        column: int,
        expected: tuple[str, ...],
        found: str = "",
    ):
        self.line = line
        self.column = column
        self.expected = expected
        self.found = found
        found_text = f" near {found!r}" if found else ""
        super().__init__(
            f"line {line}, column {column}: no declaration matches{found_text} "
            f"(expected one of: {', '.join(expected)})"
        )

    @classmethod
    def from_exception(cls, err: pp.ParseBaseException, text: str) -> "ParseError":
        expected = CONTENT_ALTERNATIVES
        loc = min(err.loc, len(text))
        if open_conditional_depth(text, loc):
            expected = expected + ("#endif",)
        found = text[loc : loc + 32].split("\n", 1)[0].strip()
        return cls(pp.lineno(loc, text), pp.col(loc, text), expected, found)


class UnterminatedMacroBlockError(GenerateError):
    code = "UNTERMINATED_MACRO_BLOCK"
    exit_code = EXIT_UNTERMINATED_BLOCK

    def __init__(self, directive: str, line: int, column: int):
        self.directive = directive
        self.line = line
        self.column = column
        super().__init__(
            f"line {line}, column {column}: #{directive} has no matching #endif"
        )


class UnresolvedAggregateError(GenerateError):
    code = "UNRESOLVED_TYPE"
    exit_code = EXIT_TYPE_ERROR

    def __init__(self, type_name: str, context: str, line: int, column: int):
        self.type_name = type_name
        self.context = context
        self.line = line
        self.column = column
        super().__init__(
            f"line {line}, column {column}: type '{type_name}' used by "
            f"'{context}' is not declared in the header"
        )


class UnknownTypeError(GenerateError):
    code = "UNKNOWN_TYPE"
    exit_code = EXIT_TYPE_ERROR

    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(f"'{type_name}' is not a known primitive type")


class UnsupportedSignatureError(GenerateError):
    code = "UNSUPPORTED_SIGNATURE"
    exit_code = EXIT_TYPE_ERROR

    def __init__(self, message: str, context: str, line: int, column: int):
        self.context = context
        self.line = line
        self.column = column
        super().__init__(f"line {line}, column {column}: {context}: {message}")


class DuplicateHelperInvariantViolation(RuntimeError):
    """Raised if an allocator/deallocator pair is emitted twice for one name."""

    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(f"helper pair for '{type_name}' emitted more than once")


class ErrorContext(NamedTuple):
    name: str
    line: int
    column: int


# ===--- Data classes ---=== #


@dataclass(frozen=True)
class Primitive:
    name: str


@dataclass(frozen=True)
class AggregateRef:
    name: str
    tag: str | None = field(default=None, compare=False)


class _VariadicMarker:
    def __repr__(self) -> str:
        return "VARIADIC"


VARIADIC = _VariadicMarker()


@dataclass(frozen=True)
class Parameter:
    type: Primitive | AggregateRef
    pointer_depth: int
    name: str
    is_const: bool = False
    is_unsigned: bool = False

    @property
    def c_declaration(self) -> str:
        c_type = render_c_type(
            self.type, self.pointer_depth, self.is_const, self.is_unsigned
        )
        return f"{c_type} {self.name}"


@dataclass(frozen=True)
class StructField:
    type: Primitive | AggregateRef
    pointer_depth: int
    name: str
    is_const: bool = False
    is_unsigned: bool = False
    array_dims: tuple[str, ...] = ()


@dataclass(frozen=True)
class Function:
    return_type: Primitive | AggregateRef
    return_pointer_depth: int
    name: str
    parameters: tuple[Parameter, ...]
    is_variadic: bool = False
    return_is_const: bool = False
    return_is_unsigned: bool = False
    line: int = 0
    column: int = 0


@dataclass(frozen=True)
class Typedef:
    name: str
    target: Primitive | AggregateRef
    pointer_depth: int = 0
    is_unsigned: bool = False
    callback: Function | None = None
    line: int = 0
    column: int = 0


@dataclass(frozen=True)
class StructDef:
    name: str
    fields: tuple[StructField, ...]
    tag: str | None = None
    is_union: bool = False
    is_typedef: bool = True
    line: int = 0
    column: int = 0

    @property
    def c_name(self) -> str:
        if self.is_typedef:
            return self.name
        keyword = "union" if self.is_union else "struct"
        return f"{keyword} {self.name}"


@dataclass(frozen=True)
class EnumDef:
    name: str | None
    members: tuple[tuple[str, str | None], ...]
    tag: str | None = None
    line: int = 0
    column: int = 0


@dataclass(frozen=True)
class Macro:
    kind: str
    name: str | None = None
    params: str | None = None
    value: str = ""
    body: tuple["Declaration", ...] = ()
    line: int = 0
    column: int = 0


@dataclass(frozen=True)
class Include:
    target: str
    is_system: bool
    line: int = 0
    column: int = 0


@dataclass(frozen=True)
class Statement:
    text: str
    line: int = 0
    column: int = 0


Declaration = Function | Typedef | StructDef | EnumDef | Macro | Include | Statement


def render_c_type(
    type_: Primitive | AggregateRef,
    pointer_depth: int,
    is_const: bool = False,
    is_unsigned: bool = False,
) -> str:
    parts: list[str] = []
    if is_const:
        parts.append("const")
    if is_unsigned:
        parts.append("unsigned")
    if isinstance(type_, AggregateRef) and type_.tag:
        parts.append(type_.tag)
    parts.append(type_.name)
    return " ".join(parts) + "*" * pointer_depth


def iter_declarations(declarations: Iterable[Declaration]) -> Iterator[Declaration]:
    """Yield declarations in source order, descending into macro block bodies."""
    pending = [iter(declarations)]
    while pending:
        decl = next(pending[-1], None)
        if decl is None:
            pending.pop()
            continue
        yield decl
        if isinstance(decl, Macro) and decl.body:
            pending.append(iter(decl.body))


# ===--- Type table ---=== #


@dataclass(frozen=True)
class HostType:
    signed: str
    unsigned: str | None = None


DEFAULT_PRIMITIVES: dict[str, HostType] = {
    "int": HostType("c_int", "UInt32"),
    "float": HostType("c_float"),
    "double": HostType("c_double"),
    "short": HostType("c_short", "UInt16"),
    "char": HostType("c_char", "UInt8"),
    "bool": HostType("Bool"),
    "void": HostType(HOST_VOID),
    "va_list": HostType(HOST_TEXT),
    "long": HostType("c_long", "UInt64"),
    "long long": HostType("c_long_long", "UInt64"),
    "_Bool": HostType("Bool"),
    "size_t": HostType("c_size_t"),
    "int8_t": HostType("Int8"),
    "int16_t": HostType("Int16"),
    "int32_t": HostType("Int32"),
    "int64_t": HostType("Int64"),
    "uint8_t": HostType("UInt8"),
    "uint16_t": HostType("UInt16"),
    "uint32_t": HostType("UInt32"),
    "uint64_t": HostType("UInt64"),
}

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def wrap_pointer(base: str, depth: int) -> str:
    for _ in range(depth):
        base = f"UnsafePointer[{base}, MutAnyOrigin]"
    return base


class TypeTable:
    """Fixed mapping from C primitive type names to Mojo host types.

    Any identifier that is not a registered primitive resolves to an
    AggregateRef; whether that aggregate is actually declared is decided
    later by the symbol table.
    """

    def __init__(self, entries: Mapping[str, HostType]):
        self._entries = MappingProxyType(dict(entries))

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def resolve(self, name: str, tag: str | None = None) -> Primitive | AggregateRef:
        if name in self._entries:
            return Primitive(name)
        if not _IDENTIFIER_RE.match(name):
            raise UnknownTypeError(name)
        return AggregateRef(name, tag)

    def host_primitive(self, name: str, pointer_depth: int, is_unsigned: bool) -> str:
        entry = self._entries[name]
        base = entry.unsigned if is_unsigned and entry.unsigned else entry.signed
        if name == "char" and not is_unsigned and pointer_depth > 0:
            base = HOST_TEXT
            pointer_depth -= 1
        return wrap_pointer(base, pointer_depth)


DEFAULT_TYPE_TABLE = TypeTable(DEFAULT_PRIMITIVES)


def load_type_table(path: Path) -> TypeTable:
    """Merge a JSON type table over the defaults.

    Values are either a host type string or an object with "host" and an
    optional "unsigned" key:

        {"float": "Float32", "long": {"host": "Int64", "unsigned": "UInt64"}}
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as err:
        raise ConfigError(
            "INVALID_TYPE_TABLE",
            f"Cannot read type table {path}: {err}",
            "Pass a JSON object mapping C type names to Mojo types.",
        ) from err
    if not isinstance(raw, dict):
        raise ConfigError(
            "INVALID_TYPE_TABLE",
            f"Type table {path} must be a JSON object, got {type(raw).__name__}",
        )

    entries = dict(DEFAULT_PRIMITIVES)
    for name, value in raw.items():
        if isinstance(value, str):
            entries[name] = HostType(value)
        elif isinstance(value, dict) and isinstance(value.get("host"), str):
            entries[name] = HostType(value["host"], value.get("unsigned"))
        else:
            raise ConfigError(
                "INVALID_TYPE_TABLE",
                f"Invalid type table entry for {name!r}: {value!r}",
                'Use "name": "HostType" or "name": {"host": ..., "unsigned": ...}.',
            )
    return TypeTable(entries)


# ===--- Grammar ---=== #

pp.ParserElement.enable_packrat()

RESERVED_WORDS = (
    "typedef",
    "struct",
    "union",
    "enum",
    "const",
    "volatile",
    "signed",
    "unsigned",
    "extern",
    "static",
    "inline",
    "void",
    "char",
    "short",
    "int",
    "long",
    "float",
    "double",
    "return",
    "sizeof",
)

CONTENT_ALTERNATIVES = (
    "macro block",
    "closing brace",
    "typedef",
    "function declaration",
    "include",
    "define",
    "statement",
)

_BUILTIN_WORDS = frozenset({"void", "char", "short", "int", "long", "float", "double"})
_QUALIFIER_WORDS = frozenset({"const", "volatile"})
_SIGN_WORDS = frozenset({"signed", "unsigned"})
_TAG_WORDS = frozenset({"struct", "union", "enum"})

_LEADING_TRIVIA = re.compile(r"(?:\s+|//[^\n]*|/\*[\s\S]*?\*/)*")
_COMMENT_OR_LITERAL = re.compile(
    r"//[^\n]*|/\*[\s\S]*?\*/|\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*'"
)
_CONDITIONAL_RE = re.compile(
    r"^[ \t]*(#)[ \t]*(ifndef|ifdef|if|endif)\b", re.MULTILINE
)
_OPENING_DIRECTIVES = frozenset({"if", "ifdef", "ifndef"})
_DIRECTIVE_RE = re.compile(r"#[ \t]*(\w+)([\s\S]*)")

# A directive line runs to the end of the line, through block comments and
# backslash continuations.
_LINE_TAIL = r"(?:/\*[\s\S]*?\*/|[^\n\\]|\\[\s\S])*"


@dataclass(frozen=True)
class _TypeSpec:
    type: Primitive | AggregateRef
    is_const: bool = False
    is_unsigned: bool = False


def source_position(text: str, loc: int) -> tuple[int, int]:
    """1-based (line, column) of the first token at or after loc."""
    loc = _LEADING_TRIVIA.match(text, loc).end()
    return pp.lineno(loc, text), pp.col(loc, text)


def mask_comments(text: str) -> str:
    """Blank out comments, keeping string literals and every newline in place."""

    def _blank(match: re.Match) -> str:
        chunk = match.group()
        if chunk[0] in "\"'":
            return chunk
        return re.sub(r"[^\n]", " ", chunk)

    return _COMMENT_OR_LITERAL.sub(_blank, text)


def _clean_directive_text(raw: str) -> str:
    return " ".join(mask_comments(raw).replace("\\\n", " ").split())


def _flatten_parameters(raw: Iterable) -> tuple[tuple[Parameter, ...], bool]:
    params = list(raw)
    is_variadic = bool(params) and params[-1] is VARIADIC
    params = [p for p in params if p is not VARIADIC]
    if (
        len(params) == 1
        and params[0].type == Primitive("void")
        and params[0].pointer_depth == 0
        and not params[0].name
    ):
        params = []
    named = tuple(
        p if p.name else replace(p, name=f"arg{index}")
        for index, p in enumerate(params)
    )
    return named, is_variadic


def build_grammar(type_table: TypeTable = DEFAULT_TYPE_TABLE) -> pp.ParserElement:
    """Build the pyparsing grammar for the declaration subset of C.

    Parse actions construct declaration objects directly, so the result of
    parse_string is the flat, ordered declaration sequence. #if and #endif
    lines come out as flat Macro tokens; parse_header nests them.
    """

    def _type_spec(toks):
        words = toks.as_list()
        tag = next((w for w in words if w in _TAG_WORDS), None)
        base = [
            w for w in words if w not in _QUALIFIER_WORDS | _SIGN_WORDS | _TAG_WORDS
        ]
        if tag is None and all(w in _BUILTIN_WORDS for w in base):
            if len(base) > 1 and base[-1] == "int":
                base = base[:-1]
            name = " ".join(base) or "int"
        else:
            name = base[0]
        return _TypeSpec(
            type_table.resolve(name, tag), "const" in words, "unsigned" in words
        )

    def _parameter(toks):
        spec, pointer, name, dims = toks
        return Parameter(
            spec.type, len(pointer) + len(dims), name, spec.is_const, spec.is_unsigned
        )

    def _function_pointer_parameter(toks):
        return Parameter(Primitive("void"), 1, toks[2])

    def _function(s, loc, toks):
        spec, pointer, name, params = toks
        line, column = source_position(s, loc)
        parameters, is_variadic = _flatten_parameters(params)
        return Function(
            spec.type,
            len(pointer),
            name,
            parameters,
            is_variadic,
            spec.is_const,
            spec.is_unsigned,
            line,
            column,
        )

    def _fields(toks):
        spec = toks[0]
        return [
            StructField(
                spec.type,
                len(pointer),
                name,
                spec.is_const,
                spec.is_unsigned,
                tuple(d[1:-1].strip() for d in dims),
            )
            for pointer, name, dims in toks[1:]
        ]

    def _function_pointer_field(toks):
        return [StructField(Primitive("void"), 1, toks[2])]

    def _record_typedef(s, loc, toks):
        keyword, tag_name, fields, name = toks
        line, column = source_position(s, loc)
        return StructDef(
            name, tuple(fields), tag_name or None, keyword == "union", True, line, column
        )

    def _record_definition(s, loc, toks):
        keyword, name, fields = toks
        line, column = source_position(s, loc)
        return StructDef(
            name, tuple(fields), name, keyword == "union", False, line, column
        )

    def _enum_members(members) -> tuple[tuple[str, str | None], ...]:
        return tuple(
            (member[0], member[1].strip() if len(member) > 1 else None)
            for member in members
        )

    def _enum_typedef(s, loc, toks):
        tag_name, members, name = toks
        line, column = source_position(s, loc)
        return EnumDef(name, _enum_members(members), tag_name or None, line, column)

    def _enum_definition(s, loc, toks):
        tag_name, members = toks
        line, column = source_position(s, loc)
        return EnumDef(
            tag_name or None, _enum_members(members), tag_name or None, line, column
        )

    def _callback_typedef(s, loc, toks):
        spec, pointer, name, params = toks
        line, column = source_position(s, loc)
        parameters, is_variadic = _flatten_parameters(params)
        signature = Function(
            spec.type,
            len(pointer),
            name,
            parameters,
            is_variadic,
            spec.is_const,
            spec.is_unsigned,
            line,
            column,
        )
        return Typedef(
            name, Primitive("void"), 1, callback=signature, line=line, column=column
        )

    def _alias_typedef(s, loc, toks):
        spec, pointer, name, dims = toks
        line, column = source_position(s, loc)
        return Typedef(
            name,
            spec.type,
            len(pointer) + len(dims),
            spec.is_unsigned,
            line=line,
            column=column,
        )

    def _forward_declaration(s, loc, toks):
        keyword, name = toks
        line, column = source_position(s, loc)
        return Typedef(name, AggregateRef(name, keyword), line=line, column=column)

    def _directive(s, loc, toks):
        kind, value = _DIRECTIVE_RE.match(toks[0]).groups()
        line, column = source_position(s, loc)
        return Macro(kind, value=_clean_directive_text(value), line=line, column=column)

    def _include(s, loc, toks):
        target = toks["target"]
        line, column = source_position(s, loc)
        return Include(target[1:-1], target.startswith("<"), line, column)

    def _define(s, loc, toks):
        params = toks.get("params")
        line, column = source_position(s, loc)
        return Macro(
            "define",
            toks["name"],
            params[1:-1].strip() if params else None,
            _clean_directive_text(toks["value"]),
            line=line,
            column=column,
        )

    def _statement(s, loc, toks):
        line, column = source_position(s, loc)
        return Statement(toks[0], line, column)

    LPAR, RPAR, LBRACE, RBRACE, SEMI, COMMA = map(pp.Suppress, "(){};,")
    STAR = pp.Suppress("*")
    TYPEDEF = pp.Suppress(pp.Keyword("typedef"))
    ENUM = pp.Suppress(pp.Keyword("enum"))

    reserved = pp.MatchFirst([pp.Keyword(word) for word in RESERVED_WORDS])
    identifier = (~reserved + pp.Word(pp.alphas + "_", pp.alphanums + "_")).set_name(
        "identifier"
    )

    qualifier = pp.one_of("const volatile", as_keyword=True)
    sign = pp.one_of("signed unsigned", as_keyword=True)
    builtin = pp.one_of("void char short int long float double", as_keyword=True)
    tag = pp.one_of("struct union enum", as_keyword=True)
    record_keyword = pp.one_of("struct union", as_keyword=True)
    storage = pp.one_of("extern static inline", as_keyword=True)

    type_spec = (
        pp.ZeroOrMore(qualifier)
        + (
            sign + pp.ZeroOrMore(builtin)
            | pp.OneOrMore(builtin)
            | pp.Opt(tag) + identifier
        )
        + pp.ZeroOrMore(qualifier)
    ).set_name("type")
    type_spec.set_parse_action(_type_spec)

    star = pp.Literal("*") + pp.Suppress(pp.ZeroOrMore(qualifier))
    stars = pp.Group(pp.ZeroOrMore(star))
    arrays = pp.Group(pp.ZeroOrMore(pp.Regex(r"\[[^\]]*\]")))
    bitfield = pp.Suppress(":" + pp.Word(pp.nums))

    # Parameters
    param_list = pp.Forward()
    ellipsis = pp.Literal("...").set_parse_action(pp.replace_with(VARIADIC))
    function_pointer_param = (
        type_spec
        + stars
        + LPAR
        + STAR
        + pp.Opt(identifier, default="")
        + RPAR
        + pp.Suppress(LPAR + pp.Opt(param_list) + RPAR)
    ).set_parse_action(_function_pointer_parameter)
    parameter = (
        type_spec + stars + pp.Opt(identifier, default="") + arrays
    ).set_parse_action(_parameter)
    param_item = ellipsis | function_pointer_param | parameter
    param_list <<= param_item + pp.ZeroOrMore(COMMA + param_item)
    param_group = pp.Group(pp.Opt(param_list))

    # Functions
    api_annotation = identifier + pp.FollowedBy(type_spec + stars + identifier + "(")
    function_head = (
        pp.Suppress(pp.ZeroOrMore(storage | api_annotation))
        + type_spec
        + stars
        + identifier
        + LPAR
        + param_group
        + RPAR
    ).set_parse_action(_function)
    function_definition = pp.original_text_for(
        function_head + pp.nested_expr("{", "}")
    ).add_parse_action(_statement)
    function_decl = (function_head + SEMI | function_definition).set_name(
        "function declaration"
    )

    # Records and enums
    field_declarator = pp.Group(stars + identifier + arrays + pp.Opt(bitfield))
    field_decl = (
        type_spec + field_declarator + pp.ZeroOrMore(COMMA + field_declarator) + SEMI
    ).set_parse_action(_fields)
    function_pointer_field = (
        type_spec
        + stars
        + LPAR
        + STAR
        + identifier
        + RPAR
        + pp.Suppress(LPAR + pp.Opt(param_list) + RPAR)
        + SEMI
    ).set_parse_action(_function_pointer_field)
    record_body = (
        LBRACE + pp.Group(pp.ZeroOrMore(function_pointer_field | field_decl)) + RBRACE
    )

    enum_value = pp.Regex(r"(?:[^,}/]|/(?![/*]))+")
    enum_member = pp.Group(identifier + pp.Opt(pp.Suppress("=") + enum_value))
    enum_body = (
        LBRACE
        + pp.Group(
            pp.Opt(enum_member + pp.ZeroOrMore(COMMA + enum_member) + pp.Opt(COMMA))
        )
        + RBRACE
    )

    record_typedef = (
        TYPEDEF
        + record_keyword
        + pp.Opt(identifier, default="")
        + record_body
        + identifier
        + SEMI
    ).set_parse_action(_record_typedef)
    enum_typedef = (
        TYPEDEF + ENUM + pp.Opt(identifier, default="") + enum_body + identifier + SEMI
    ).set_parse_action(_enum_typedef)
    callback_typedef = (
        TYPEDEF
        + type_spec
        + stars
        + LPAR
        + STAR
        + identifier
        + RPAR
        + LPAR
        + param_group
        + RPAR
        + SEMI
    ).set_parse_action(_callback_typedef)
    alias_typedef = (
        TYPEDEF + type_spec + stars + identifier + arrays + SEMI
    ).set_parse_action(_alias_typedef)
    record_definition = (
        record_keyword + identifier + record_body + pp.Suppress(pp.Opt(identifier)) + SEMI
    ).set_parse_action(_record_definition)
    enum_definition = (
        ENUM
        + pp.Opt(identifier, default="")
        + enum_body
        + pp.Suppress(pp.Opt(identifier))
        + SEMI
    ).set_parse_action(_enum_definition)
    forward_declaration = (record_keyword + identifier + SEMI).set_parse_action(
        _forward_declaration
    )
    typedef_decl = (
        record_typedef
        | enum_typedef
        | callback_typedef
        | alias_typedef
        | record_definition
        | enum_definition
        | forward_declaration
    ).set_name("typedef")

    # Preprocessor lines. Conditionals are flat tokens here; nest_conditionals
    # rebuilds the block structure.
    if_line = pp.Regex(r"#[ \t]*(?:ifndef|ifdef|if)\b" + _LINE_TAIL).set_name("#if")
    endif_line = pp.Regex(r"#[ \t]*endif\b" + _LINE_TAIL).set_name("#endif")
    directive_line = pp.Regex(
        r"#[ \t]*(?:else|elif|error|warning|pragma|undef|line)\b" + _LINE_TAIL
    )
    macro_block = (if_line | endif_line | directive_line).set_name("macro block")
    macro_block.set_parse_action(_directive)

    include_line = (
        pp.Regex(r'#[ \t]*include[ \t]*(?P<target><[^>\n]*>|"[^"\n]*")[^\n]*')
        .set_name("include")
        .set_parse_action(_include)
    )
    define_line = (
        pp.Regex(
            r"#[ \t]*define[ \t]+(?P<name>[A-Za-z_]\w*)(?P<params>\([^)\n]*\))?"
            r"(?P<value>" + _LINE_TAIL + ")"
        )
        .set_name("define")
        .set_parse_action(_define)
    )

    # Statements kept only for structure
    closing_brace = pp.Literal("}").set_name("closing brace")
    closing_brace.set_parse_action(_statement)
    linkage_open = pp.Regex(r'extern[ \t]+"C"[ \t]*\{').set_parse_action(_statement)
    variable_decl = pp.original_text_for(
        pp.ZeroOrMore(storage)
        + type_spec
        + stars
        + identifier
        + arrays
        + pp.Opt("=" + pp.Regex(r"[^;]+"))
        + ";"
    ).add_parse_action(_statement)
    empty_statement = pp.Literal(";").set_parse_action(_statement)
    statement = (linkage_open | variable_decl | empty_statement).set_name("statement")

    content = (
        macro_block
        | closing_brace
        | typedef_decl
        | function_decl
        | include_line
        | define_line
        | statement
    )

    header = pp.ZeroOrMore(content) + pp.StringEnd()
    header.ignore(pp.cpp_style_comment)
    return header


# ===--- Parser ---=== #


def check_macro_balance(text: str) -> None:
    """Verify every #if/#ifdef/#ifndef has a matching #endif.

    Runs over comment-masked text before the grammar so that an open block
    is reported at its own position instead of wherever parsing gave up.

    Raises:
        UnterminatedMacroBlockError: An opening directive is never closed.
        ParseError: An #endif appears with no open block.
    """
    masked = mask_comments(text)
    stack: list[tuple[str, int]] = []
    for match in _CONDITIONAL_RE.finditer(masked):
        directive = match.group(2)
        loc = match.start(1)
        if directive != "endif":
            stack.append((directive, loc))
            continue
        if not stack:
            raise ParseError(
                pp.lineno(loc, text), pp.col(loc, text), CONTENT_ALTERNATIVES, "#endif"
            )
        stack.pop()

    if stack:
        directive, loc = stack[-1]
        raise UnterminatedMacroBlockError(
            directive, pp.lineno(loc, text), pp.col(loc, text)
        )


def open_conditional_depth(text: str, loc: int) -> int:
    """Number of conditional blocks still open at offset loc."""
    depth = 0
    for match in _CONDITIONAL_RE.finditer(mask_comments(text), 0, loc):
        depth += -1 if match.group(2) == "endif" else 1
    return max(depth, 0)


def nest_conditionals(tokens: Iterable[Declaration]) -> tuple[Declaration, ...]:
    """Fold flat #if ... #endif token runs into Macro blocks with a body.

    Uses an explicit stack, so nesting depth is bounded only by memory.
    The #endif tokens themselves are dropped.
    """
    stack: list[tuple[Macro, list[Declaration]]] = []
    current: list[Declaration] = []
    for token in tokens:
        if isinstance(token, Macro) and token.kind in _OPENING_DIRECTIVES:
            stack.append((token, current))
            current = []
        elif isinstance(token, Macro) and token.kind == "endif":
            if not stack:
                raise ParseError(
                    token.line, token.column, CONTENT_ALTERNATIVES, "#endif"
                )
            opening, parent = stack.pop()
            parent.append(replace(opening, body=tuple(current)))
            current = parent
        else:
            current.append(token)
    if stack:
        opening = stack[-1][0]
        raise UnterminatedMacroBlockError(opening.kind, opening.line, opening.column)
    return tuple(current)


def parse_header(
    text: str, type_table: TypeTable = DEFAULT_TYPE_TABLE
) -> tuple[Declaration, ...]:
    """Parse header text into its ordered top-level declarations.

    Conditional blocks are returned as Macro declarations whose body holds
    the nested declarations; use iter_declarations for a flat view.

    Args:
        text: Complete header source.
        type_table: Primitive names that resolve to Primitive types.

    Returns:
        Declarations in source order.

    Raises:
        ParseError: No declaration alternative matches at some position.
        UnterminatedMacroBlockError: A conditional block is never closed.
        UnknownTypeError: A builtin type combination is not in the table.
    """
    check_macro_balance(text)
    grammar = build_grammar(type_table)
    try:
        result = grammar.parse_string(text)
    except pp.ParseBaseException as err:
        raise ParseError.from_exception(err, text) from err
    return nest_conditionals(result)


# ===--- Symbol table ---=== #

KIND_PRIMITIVE = "primitive"
KIND_STRUCT = "struct"
KIND_UNION = "union"
KIND_OPAQUE = "opaque"
KIND_ALIAS = "alias"
KIND_ENUM = "enum"
KIND_CALLBACK = "callback"
KIND_PRIMITIVE_ALIAS = "primitive alias"

_ALIAS_KINDS = frozenset({KIND_ALIAS, KIND_PRIMITIVE_ALIAS})
_AGGREGATE_KINDS = frozenset({KIND_STRUCT, KIND_UNION, KIND_OPAQUE})


@dataclass(frozen=True)
class Symbol:
    name: str
    kind: str
    declaration: StructDef | Typedef | EnumDef


@dataclass(frozen=True)
class ResolvedType:
    """A type after following typedef chains to a primitive or a named aggregate.

    Attributes:
        name: Primitive name, or the declared name of the struct/union/enum/
            callback the chain ends at.
        kind: One of the KIND_* constants (never an alias kind).
        pointer_depth: Pointer levels accumulated along the chain.
        is_unsigned: Unsigned flag of the final primitive.
        struct: The struct or union definition, when there is one.
    """

    name: str
    kind: str
    pointer_depth: int
    is_unsigned: bool = False
    struct: StructDef | None = None


class SymbolTable:
    """Every type name a header declares, keyed by typedef name and by tag.

    The first declaration of a name wins, so both branches of an #if may
    declare the same type. A tag that is only forward declared (`struct Foo;`
    or `typedef struct Foo Foo;`) resolves to an opaque type; a tag that is
    never declared at all is unresolved.
    """

    def __init__(self, type_table: TypeTable = DEFAULT_TYPE_TABLE):
        self.type_table = type_table
        self._names: dict[str, Symbol] = {}
        self._tags: dict[str, Symbol] = {}
        self._forward_tags: set[str] = set()

    @classmethod
    def from_declarations(
        cls,
        declarations: Iterable[Declaration],
        type_table: TypeTable = DEFAULT_TYPE_TABLE,
    ) -> "SymbolTable":
        table = cls(type_table)
        for decl in iter_declarations(declarations):
            table.add(decl)
        return table

    def __contains__(self, name: object) -> bool:
        return name in self._names or name in self._tags

    def add(self, decl: Declaration) -> None:
        if isinstance(decl, StructDef):
            kind = KIND_UNION if decl.is_union else KIND_STRUCT
            symbol = Symbol(decl.name, kind, decl)
            if decl.is_typedef:
                self._names.setdefault(decl.name, symbol)
            if decl.tag:
                self._tags.setdefault(decl.tag, symbol)
        elif isinstance(decl, EnumDef):
            symbol = Symbol(decl.name or decl.tag or "", KIND_ENUM, decl)
            if decl.name:
                self._names.setdefault(decl.name, symbol)
            if decl.tag:
                self._tags.setdefault(decl.tag, symbol)
        elif isinstance(decl, Typedef):
            if decl.callback is not None:
                kind = KIND_CALLBACK
            elif isinstance(decl.target, Primitive):
                kind = KIND_PRIMITIVE_ALIAS
            else:
                kind = KIND_ALIAS
                if decl.target.tag in ("struct", "union"):
                    self._forward_tags.add(decl.target.name)
            self._names.setdefault(decl.name, Symbol(decl.name, kind, decl))

    def lookup(self, ref: AggregateRef) -> Symbol | None:
        if ref.tag:
            return self._tags.get(ref.name)
        return self._names.get(ref.name) or self._tags.get(ref.name)

    def resolve(
        self,
        type_: Primitive | AggregateRef,
        pointer_depth: int,
        context: ErrorContext,
        is_unsigned: bool = False,
    ) -> ResolvedType:
        """Follow typedef chains from type_ down to a primitive or named aggregate.

        Raises:
            UnresolvedAggregateError: A name or tag is never declared, or
                an alias chain loops back on itself.
        """
        depth = pointer_depth
        current = type_
        visited: set[str] = set()
        while isinstance(current, AggregateRef):
            symbol = self.lookup(current)
            if symbol is None:
                if current.tag != "enum" and current.name in self._forward_tags:
                    return ResolvedType(current.name, KIND_OPAQUE, depth)
                raise UnresolvedAggregateError(
                    current.name, context.name, context.line, context.column
                )
            if symbol.kind not in _ALIAS_KINDS:
                struct = (
                    symbol.declaration
                    if isinstance(symbol.declaration, StructDef)
                    else None
                )
                return ResolvedType(symbol.name, symbol.kind, depth, struct=struct)
            if symbol.name in visited:
                raise UnresolvedAggregateError(
                    current.name, context.name, context.line, context.column
                )
            visited.add(symbol.name)
            typedef = symbol.declaration
            depth += typedef.pointer_depth
            is_unsigned = typedef.is_unsigned
            current = typedef.target
        return ResolvedType(current.name, KIND_PRIMITIVE, depth, is_unsigned)

    def struct_for(self, name: str, context: ErrorContext) -> StructDef:
        resolved = self.resolve(AggregateRef(name), 0, context)
        if resolved.kind != KIND_STRUCT or resolved.struct is None:
            raise UnsupportedSignatureError(
                f"'{name}' is a {resolved.kind}, not a struct with known fields",
                context.name,
                context.line,
                context.column,
            )
        return resolved.struct


# ===--- Pointerization analyzer ---=== #

VALUE_PRIMITIVE = "primitive"
VALUE_BY_VALUE = "by_value"
VALUE_POINTER = "pointer"
VALUE_ENUM = "enum"
VALUE_CALLBACK = "callback"

HELPER_FIELD_VALUE = "value"
HELPER_FIELD_DEREF = "deref"
HELPER_FIELD_ARRAY = "array"


def classify_resolved(resolved: ResolvedType, context: ErrorContext) -> str:
    """Decide how a resolved type crosses the native boundary.

    A struct at pointer depth 0 is by value; every other shape passes through
    unchanged. Unions and opaque types cannot be copied through a pointer
    because their layout is unknown or ambiguous, so they are rejected.
    """
    if resolved.kind == KIND_PRIMITIVE:
        return VALUE_PRIMITIVE
    if resolved.pointer_depth > 0:
        return VALUE_POINTER
    if resolved.kind == KIND_ENUM:
        return VALUE_ENUM
    if resolved.kind == KIND_CALLBACK:
        return VALUE_CALLBACK
    if resolved.kind == KIND_STRUCT:
        return VALUE_BY_VALUE
    raise UnsupportedSignatureError(
        f"{resolved.kind} type '{resolved.name}' cannot be passed by value",
        context.name,
        context.line,
        context.column,
    )


def classify(
    type_: Primitive | AggregateRef,
    pointer_depth: int,
    symbols: SymbolTable,
    context: ErrorContext,
) -> str:
    return classify_resolved(symbols.resolve(type_, pointer_depth, context), context)


@dataclass(frozen=True)
class ParameterPlan:
    original: Parameter
    shim: Parameter
    value_class: str
    resolved: ResolvedType

    @property
    def by_value(self) -> bool:
        return self.value_class == VALUE_BY_VALUE

    @property
    def call_argument(self) -> str:
        if self.by_value:
            return f"*{self.original.name}"
        return self.original.name


@dataclass(frozen=True)
class FunctionPlan:
    """How one function is exposed: directly, or through a shim wrapper.

    Attributes:
        function: The declaration as parsed.
        parameters: One plan per parameter, in declaration order.
        return_class: VALUE_* classification of the return type.
        return_resolved: Return type after alias resolution.
        shim_name: Wrapper name (function name + suffix). Only exported
            when needs_shim is true.
    """

    function: Function
    parameters: tuple[ParameterPlan, ...]
    return_class: str
    return_resolved: ResolvedType
    shim_name: str

    @property
    def returns_by_value(self) -> bool:
        return self.return_class == VALUE_BY_VALUE

    @property
    def returns_void(self) -> bool:
        ret = self.return_resolved
        return ret.kind == KIND_PRIMITIVE and ret.name == "void" and ret.pointer_depth == 0

    @property
    def needs_shim(self) -> bool:
        return self.returns_by_value or any(p.by_value for p in self.parameters)

    @property
    def symbol(self) -> str:
        """Native symbol the binding calls."""
        return self.shim_name if self.needs_shim else self.function.name

    @property
    def call_expression(self) -> str:
        args = ", ".join(p.call_argument for p in self.parameters)
        return f"{self.function.name}({args})"

    @property
    def helper_requirements(self) -> tuple[str, ...]:
        names: dict[str, None] = {}
        if self.returns_by_value:
            names[self.return_resolved.name] = None
        for param in self.parameters:
            if param.by_value:
                names[param.resolved.name] = None
        return tuple(names)


@dataclass(frozen=True)
class HelperField:
    field: StructField
    mode: str
    resolved: ResolvedType


@dataclass(frozen=True)
class HelperPlan:
    struct: StructDef
    fields: tuple[HelperField, ...]

    @property
    def name(self) -> str:
        return self.struct.name

    @property
    def allocator(self) -> str:
        return f"malloc_{self.struct.name}"

    @property
    def deallocator(self) -> str:
        return f"free_{self.struct.name}"


@dataclass(frozen=True)
class TransformationPlan:
    functions: dict[str, FunctionPlan]
    helpers: dict[str, HelperPlan]

    @property
    def helper_names(self) -> tuple[str, ...]:
        return tuple(self.helpers)

    @property
    def shimmed(self) -> tuple[FunctionPlan, ...]:
        return tuple(p for p in self.functions.values() if p.needs_shim)


def plan_function(
    function: Function, symbols: SymbolTable, suffix: str = DEFAULT_SHIM_SUFFIX
) -> FunctionPlan:
    """Classify a function's return and parameters and derive its shim shape.

    By-value parameters become pointers in the shim and are dereferenced in
    the call; a by-value return becomes a pointer to a heap copy. Either one
    alone is enough to require a shim.

    Args:
        function: Parsed function declaration.
        symbols: Symbol table built from the whole header.
        suffix: Appended to the function name to form the shim name.

    Returns:
        FunctionPlan with parameters in declaration order.

    Raises:
        UnresolvedAggregateError: A parameter or return type is undeclared.
        UnsupportedSignatureError: A union/opaque type is used by value, or a
            variadic function would need a shim.
    """
    context = ErrorContext(function.name, function.line, function.column)
    return_resolved = symbols.resolve(
        function.return_type,
        function.return_pointer_depth,
        context,
        function.return_is_unsigned,
    )
    return_class = classify_resolved(return_resolved, context)

    parameters: list[ParameterPlan] = []
    for param in function.parameters:
        resolved = symbols.resolve(
            param.type, param.pointer_depth, context, param.is_unsigned
        )
        value_class = classify_resolved(resolved, context)
        shim = param
        if value_class == VALUE_BY_VALUE:
            shim = replace(param, pointer_depth=param.pointer_depth + 1)
        parameters.append(ParameterPlan(param, shim, value_class, resolved))

    plan = FunctionPlan(
        function=function,
        parameters=tuple(parameters),
        return_class=return_class,
        return_resolved=return_resolved,
        shim_name=f"{function.name}{suffix}",
    )
    if plan.needs_shim and function.is_variadic:
        raise UnsupportedSignatureError(
            "variadic functions cannot be forwarded through a shim",
            function.name,
            function.line,
            function.column,
        )
    return plan


def plan_helpers(name: str, symbols: SymbolTable, context: ErrorContext) -> HelperPlan:
    struct = symbols.struct_for(name, context)
    struct_context = ErrorContext(struct.name, struct.line, struct.column)
    fields: list[HelperField] = []
    for struct_field in struct.fields:
        resolved = symbols.resolve(
            struct_field.type,
            struct_field.pointer_depth,
            struct_context,
            struct_field.is_unsigned,
        )
        if struct_field.array_dims:
            mode = HELPER_FIELD_ARRAY
        elif resolved.pointer_depth == 0 and resolved.kind in _AGGREGATE_KINDS:
            mode = HELPER_FIELD_DEREF
        else:
            mode = HELPER_FIELD_VALUE
        fields.append(HelperField(struct_field, mode, resolved))
    return HelperPlan(struct, tuple(fields))


def collect_helper_requirements(
    plans: Iterable[FunctionPlan], symbols: SymbolTable
) -> dict[str, HelperPlan]:
    """Collect the structs that need malloc_/free_ helpers, in first-use order.

    A struct's allocator takes its by-value struct fields as handles, so
    those field types need helpers too.
    """
    helpers: dict[str, HelperPlan] = {}

    def _require(name: str, context: ErrorContext) -> None:
        if name in helpers:
            return
        helper = plan_helpers(name, symbols, context)
        helpers[name] = helper
        field_context = ErrorContext(
            helper.struct.name, helper.struct.line, helper.struct.column
        )
        for helper_field in helper.fields:
            if (
                helper_field.mode == HELPER_FIELD_DEREF
                and helper_field.resolved.kind == KIND_STRUCT
            ):
                _require(helper_field.resolved.name, field_context)

    for plan in plans:
        context = ErrorContext(
            plan.function.name, plan.function.line, plan.function.column
        )
        for name in plan.helper_requirements:
            _require(name, context)
    return helpers


def check_struct_fields(struct: StructDef, symbols: SymbolTable) -> None:
    context = ErrorContext(struct.name, struct.line, struct.column)
    for struct_field in struct.fields:
        symbols.resolve(struct_field.type, struct_field.pointer_depth, context)


def check_typedef(typedef: Typedef, symbols: SymbolTable) -> None:
    context = ErrorContext(typedef.name, typedef.line, typedef.column)
    if typedef.callback is None:
        symbols.resolve(typedef.target, typedef.pointer_depth, context)
        return
    signature = typedef.callback
    symbols.resolve(signature.return_type, signature.return_pointer_depth, context)
    for param in signature.parameters:
        symbols.resolve(param.type, param.pointer_depth, context)


def analyze(
    declarations: Iterable[Declaration],
    symbols: SymbolTable,
    suffix: str = DEFAULT_SHIM_SUFFIX,
) -> TransformationPlan:
    """Build the transformation plan for a parsed header.

    Every type reference in functions, struct fields and typedefs must
    resolve. A function declared twice keeps its first declaration.
    """
    functions: dict[str, FunctionPlan] = {}
    for decl in iter_declarations(declarations):
        if isinstance(decl, Function):
            if decl.name not in functions:
                functions[decl.name] = plan_function(decl, symbols, suffix)
        elif isinstance(decl, StructDef):
            check_struct_fields(decl, symbols)
        elif isinstance(decl, Typedef):
            check_typedef(decl, symbols)

    helpers = collect_helper_requirements(functions.values(), symbols)
    return TransformationPlan(functions=functions, helpers=helpers)


# ===--- Shim emitter ---=== #


def _unique_local(base: str, taken: Iterable[str]) -> str:
    taken = set(taken)
    name = base
    while name in taken:
        name = f"{name}_"
    return name


def format_shim_wrapper(plan: FunctionPlan) -> list[str]:
    """Return the one-line C wrapper for a function that needs a shim.

    Example:
        void ClearBackground_pointerized(Color* color) { ClearBackground(*color); }
    """
    function = plan.function
    params = ", ".join(p.shim.c_declaration for p in plan.parameters) or "void"
    call = plan.call_expression

    if plan.returns_by_value:
        ret = render_c_type(
            function.return_type,
            0,
            function.return_is_const,
            function.return_is_unsigned,
        )
        local = _unique_local("result", (p.original.name for p in plan.parameters))
        return [
            f"{ret}* {plan.shim_name}({params}) {{ "
            f"{ret}* {local} = ({ret}*)malloc(sizeof({ret})); "
            f"*{local} = {call}; return {local}; }}"
        ]

    ret = render_c_type(
        function.return_type,
        function.return_pointer_depth,
        function.return_is_const,
        function.return_is_unsigned,
    )
    if plan.returns_void:
        return [f"{ret} {plan.shim_name}({params}) {{ {call}; }}"]
    return [f"{ret} {plan.shim_name}({params}) {{ return {call}; }}"]


def format_helper_pair(helper: HelperPlan) -> list[str]:
    """Return the C allocator and deallocator for one struct.

    The allocator takes the fields in declaration order. By-value aggregate
    fields arrive as pointers and are copied in; array fields arrive as
    pointers and are copied with memcpy.
    """
    c_name = helper.struct.c_name
    field_names = [f.field.name for f in helper.fields]
    local = _unique_local("ptr", field_names)

    params: list[str] = []
    assignments: list[str] = []
    for helper_field in helper.fields:
        struct_field = helper_field.field
        extra = 0 if helper_field.mode == HELPER_FIELD_VALUE else 1
        c_type = render_c_type(
            struct_field.type,
            struct_field.pointer_depth + extra,
            struct_field.is_const,
            struct_field.is_unsigned,
        )
        params.append(f"{c_type} {struct_field.name}")
        name = struct_field.name
        if helper_field.mode == HELPER_FIELD_ARRAY:
            assignments.append(
                f"    memcpy({local}->{name}, {name}, sizeof({local}->{name}));"
            )
        elif helper_field.mode == HELPER_FIELD_DEREF:
            assignments.append(f"    {local}->{name} = *{name};")
        else:
            assignments.append(f"    {local}->{name} = {name};")

    lines = [
        f"{c_name}* {helper.allocator}({', '.join(params) or 'void'}) {{",
        f"    {c_name}* {local} = ({c_name}*)malloc(sizeof({c_name}));",
    ]
    lines.extend(assignments)
    lines.append(f"    return {local};")
    lines.append("}")
    lines.append(f"void {helper.deallocator}({c_name}* ptr) {{ free(ptr); }}")
    return lines


class ShimBuilder:
    """Append-only C shim source. Each helper pair can be added only once."""

    def __init__(self):
        self.lines: list[str] = []
        self._helpers: dict[str, None] = {}

    @property
    def helper_names(self) -> tuple[str, ...]:
        return tuple(self._helpers)

    def add_wrapper(self, plan: FunctionPlan) -> None:
        self.lines.extend(format_shim_wrapper(plan))

    def add_helpers(self, helper: HelperPlan) -> None:
        if helper.name in self._helpers:
            raise DuplicateHelperInvariantViolation(helper.name)
        self._helpers[helper.name] = None
        if self.lines and self.lines[-1]:
            self.lines.append("")
        self.lines.extend(format_helper_pair(helper))
        self.lines.append("")

    def render(self, config: "WriteConfig") -> str:
        lines = format_file_header(
            config, f"Pointerized C shim for {config.header_name}", comment="//"
        )
        lines.append("")
        lines.append("#include <stdlib.h>")
        lines.append("#include <string.h>")
        lines.append(f'#include "{config.shim_include}"')
        lines.append("")
        lines.extend(self.lines)
        while lines and not lines[-1]:
            lines.pop()
        return "\n".join(lines) + "\n"


# ===--- Binding emitter ---=== #

_C_INT_RE = re.compile(r"^(-?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)[uUlL]*$")
_C_FLOAT_RE = re.compile(r"^-?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][-+]?\d+)?[fF]?$")
_C_STRING_RE = re.compile(r'^"(?:\\.|[^"\\])*"$')


def mojo_name(name: str) -> str:
    if name in MOJO_RESERVED:
        return f"{name}_"
    return name


def host_type(resolved: ResolvedType, type_table: TypeTable) -> str:
    if resolved.kind == KIND_PRIMITIVE:
        return type_table.host_primitive(
            resolved.name, resolved.pointer_depth, resolved.is_unsigned
        )
    if resolved.kind == KIND_ENUM:
        return wrap_pointer("c_int", resolved.pointer_depth)
    return wrap_pointer(resolved.name, resolved.pointer_depth)


def handle_name(struct_name: str) -> str:
    return f"{struct_name}Handle"


def parse_c_integer(raw: str) -> int | None:
    match = _C_INT_RE.match(raw.strip())
    if match is None:
        return None
    sign, digits = match.groups()
    if digits[:2].lower() == "0x":
        value = int(digits, 16)
    elif len(digits) > 1:
        value = int(digits, 8)
    else:
        value = int(digits)
    return -value if sign else value


def evaluate_enum(enum: EnumDef) -> tuple[tuple[str, int | None, str | None], ...]:
    """Assign each enum member its value, following C's implicit numbering.

    Members with initializers that are not integer literals (or references
    to earlier members) get None, as do implicit members after them.
    """
    known: dict[str, int] = {}
    next_value: int | None = 0
    members: list[tuple[str, int | None, str | None]] = []
    for name, raw in enum.members:
        if raw is None:
            value = next_value
        else:
            value = parse_c_integer(raw)
            if value is None:
                value = known.get(raw.strip())
        members.append((name, value, raw))
        if value is None:
            next_value = None
        else:
            known[name] = value
            next_value = value + 1
    return tuple(members)


def define_literal(macro: Macro) -> str | None:
    """Mojo literal for an object-like #define, or None if it is not a literal."""
    if macro.kind != "define" or macro.params is not None or not macro.value:
        return None
    value = macro.value
    if _C_STRING_RE.match(value):
        return value
    number = parse_c_integer(value)
    if number is not None:
        return str(number)
    if _C_FLOAT_RE.match(value):
        return value.rstrip("fF")
    return None


def format_mirror_struct(
    struct: StructDef, symbols: SymbolTable, type_table: TypeTable
) -> list[str]:
    context = ErrorContext(struct.name, struct.line, struct.column)
    lines = [
        "@fieldwise_init",
        f"struct {struct.name}(Copyable, Movable):",
        f'    """Native struct {struct.name}."""',
    ]
    if struct.fields:
        lines.append("")
    for struct_field in struct.fields:
        resolved = symbols.resolve(
            struct_field.type,
            struct_field.pointer_depth,
            context,
            struct_field.is_unsigned,
        )
        field_type = host_type(resolved, type_table)
        for dim in reversed(struct_field.array_dims):
            field_type = f"InlineArray[{field_type}, {dim or 0}]"
        lines.append(f"    var {mojo_name(struct_field.name)}: {field_type}")
    return lines


def format_opaque_struct(name: str, kind: str = "struct") -> list[str]:
    return [
        "@fieldwise_init",
        f"struct {name}(Copyable, Movable):",
        f'    """Opaque native {kind} {name}. Only usable behind a pointer."""',
        "    pass",
    ]


def format_handle_struct(helper: HelperPlan, type_table: TypeTable) -> list[str]:
    """Return the owning Mojo handle for one struct with helpers.

    The handle owns exactly one native block. dispose() and __del__ both go
    through the disposed flag, so the block is freed at most once.
    """
    name = helper.name
    handle = handle_name(name)
    pointer = wrap_pointer(name, 1)

    params: list[str] = []
    args: list[str] = []
    for helper_field in helper.fields:
        field_name = mojo_name(helper_field.field.name)
        resolved = helper_field.resolved
        if helper_field.mode == HELPER_FIELD_ARRAY:
            field_type = host_type(
                replace(resolved, pointer_depth=resolved.pointer_depth + 1), type_table
            )
            args.append(field_name)
        elif helper_field.mode == HELPER_FIELD_DEREF and resolved.kind == KIND_STRUCT:
            field_type = handle_name(resolved.name)
            args.append(f"{field_name}.ptr")
        elif helper_field.mode == HELPER_FIELD_DEREF:
            field_type = wrap_pointer(resolved.name, 1)
            args.append(field_name)
        else:
            field_type = host_type(resolved, type_table)
            args.append(field_name)
        params.append(f"{field_name}: {field_type}")

    init_params = ", ".join(["out self", *params])
    return [
        f"struct {handle}(Movable):",
        f'    """Owning handle for a heap-allocated {name}."""',
        "",
        f"    var ptr: {pointer}",
        "    var disposed: Bool",
        "",
        f"    fn __init__({init_params}):",
        f'        self.ptr = external_call["{helper.allocator}", {pointer}]'
        f"({', '.join(args)})",
        "        self.disposed = False",
        "",
        f"    fn __init__(out self, *, owned_ptr: {pointer}):",
        "        self.ptr = owned_ptr",
        "        self.disposed = False",
        "",
        "    fn dispose(mut self):",
        "        if self.disposed:",
        "            return",
        f'        external_call["{helper.deallocator}", NoneType](self.ptr)',
        "        self.disposed = True",
        "",
        "    fn __del__(deinit self):",
        "        if not self.disposed:",
        f'            external_call["{helper.deallocator}", NoneType](self.ptr)',
    ]


def format_function_binding(plan: FunctionPlan, type_table: TypeTable) -> list[str]:
    """Return the Mojo fn that calls a function (or its shim) via external_call.

    By-value struct parameters take the struct's handle and pass its pointer.
    A by-value struct return adopts the shim's heap copy into a handle.
    """
    function = plan.function
    params: list[str] = []
    args: list[str] = []
    for param in plan.parameters:
        name = mojo_name(param.original.name)
        if param.by_value:
            params.append(f"{name}: {handle_name(param.resolved.name)}")
            args.append(f"{name}.ptr")
        else:
            params.append(f"{name}: {host_type(param.resolved, type_table)}")
            args.append(name)
    signature = f"fn {mojo_name(function.name)}({', '.join(params)})"
    call_args = ", ".join(args)

    lines: list[str] = []
    if function.is_variadic:
        lines.append(
            f"# {function.name} is variadic; only its fixed parameters are bound."
        )
    if plan.returns_by_value:
        struct_name = plan.return_resolved.name
        handle = handle_name(struct_name)
        pointer = wrap_pointer(struct_name, 1)
        lines.append(f"{signature} -> {handle}:")
        lines.append(
            f"    return {handle}(owned_ptr="
            f'external_call["{plan.symbol}", {pointer}]({call_args}))'
        )
    elif plan.returns_void:
        lines.append(f"{signature} -> None:")
        lines.append(f'    external_call["{plan.symbol}", {HOST_VOID}]({call_args})')
    else:
        ret = host_type(plan.return_resolved, type_table)
        lines.append(f"{signature} -> {ret}:")
        lines.append(f'    return external_call["{plan.symbol}", {ret}]({call_args})')
    return lines


def format_enum(
    enum: EnumDef, skip: Iterable[str] = ()
) -> tuple[list[str], int]:
    """Return the Mojo lines for an enum and the number of constants emitted.

    Members named in skip (already emitted elsewhere) are left out.
    """
    skip = set(skip)
    lines: list[str] = []
    if enum.name:
        lines.append(f"comptime {enum.name} = c_int")
    constants = 0
    for name, value, raw in evaluate_enum(enum):
        if name in skip:
            continue
        if value is None:
            lines.append(f"# {name} = {raw} (not a constant expression)")
            continue
        lines.append(f"comptime {mojo_name(name)}: c_int = {value}")
        constants += 1
    return lines, constants


@dataclass(frozen=True)
class ExternalImport:
    """Import from a non-generated module.

    Renders as a single line:
        from <module> import <name1>, <name2>, ...

    Attributes:
        module: Module path, e.g. "ffi".
        names: Names to import, in emission order. Must be non-empty.
    """

    module: str
    names: tuple[str, ...]


def format_import_block(external_imports: tuple[ExternalImport, ...]) -> list[str]:
    """Return Mojo import lines, one per ExternalImport.

    Raises:
        ValueError: If any import has an empty names tuple.
    """
    for imp in external_imports:
        if not imp.names:
            raise ValueError(
                f"ExternalImport for module '{imp.module}' has empty names tuple"
            )
    return [
        f"from {imp.module} import {', '.join(imp.names)}" for imp in external_imports
    ]


def collect_ffi_names(lines: Iterable[str]) -> tuple[str, ...]:
    body = "\n".join(lines)
    names: list[str] = []
    if "external_call[" in body:
        names.append("external_call")
    names.extend(
        name for name in FFI_TYPE_NAMES if re.search(rf"\b{name}\b", body)
    )
    return tuple(names)


class BindingBuilder:
    """Append-only Mojo binding source, one blank line after each fragment."""

    def __init__(self):
        self.lines: list[str] = []

    def add(self, fragment: list[str]) -> None:
        if not fragment:
            return
        self.lines.extend(fragment)
        self.lines.append("")

    def render(self, config: "WriteConfig") -> str:
        lines = format_file_header(config, f"Mojo bindings for {config.header_name}")
        lines.append("")
        ffi_names = collect_ffi_names(self.lines)
        if ffi_names:
            lines.extend(format_import_block((ExternalImport("ffi", ffi_names),)))
            lines.append("")
        lines.extend(self.lines)
        while lines and not lines[-1]:
            lines.pop()
        return "\n".join(lines) + "\n"


# ===--- Driver ---=== #


@dataclass(frozen=True)
class GenerationCounts:
    """What one run emitted.

    Attributes:
        functions: Functions bound (after duplicate removal).
        pointerized: Functions routed through a shim wrapper.
        helper_pairs: malloc_/free_ pairs in the shim.
        structs: Mirror and opaque structs in the bindings.
        enums: Enum definitions bound.
        constants: Enum members and literal #defines bound as comptime values.
    """

    functions: int = 0
    pointerized: int = 0
    helper_pairs: int = 0
    structs: int = 0
    enums: int = 0
    constants: int = 0


class OutputDriver:
    """Single ordered pass over declarations feeding both builders.

    Helpers are emitted at the struct definition they belong to; any left
    over are appended by finish(). Type, function and constant names are
    emitted once each, first declaration first.
    """

    def __init__(
        self,
        plan: TransformationPlan,
        symbols: SymbolTable,
        type_table: TypeTable = DEFAULT_TYPE_TABLE,
    ):
        self.plan = plan
        self.symbols = symbols
        self.type_table = type_table
        self.shim = ShimBuilder()
        self.bindings = BindingBuilder()
        self._seen_types: set[str] = set()
        self._seen_functions: set[str] = set()
        self._seen_constants: set[str] = set()
        self._counts = dict(
            functions=0, pointerized=0, structs=0, enums=0, constants=0
        )

    @property
    def counts(self) -> GenerationCounts:
        return GenerationCounts(
            helper_pairs=len(self.shim.helper_names), **self._counts
        )

    def visit(self, decl: Declaration) -> None:
        if isinstance(decl, Function):
            self._visit_function(decl)
        elif isinstance(decl, StructDef):
            self._visit_struct(decl)
        elif isinstance(decl, Typedef):
            self._visit_typedef(decl)
        elif isinstance(decl, EnumDef):
            self._visit_enum(decl)
        elif isinstance(decl, Macro) and decl.kind == "define":
            self._visit_define(decl)

    def finish(self) -> None:
        for name in self.plan.helpers:
            self._emit_helpers(name)

    def _claim_type(self, name: str) -> bool:
        if name in self.type_table or name in self._seen_types:
            return False
        self._seen_types.add(name)
        return True

    def _emit_helpers(self, name: str) -> None:
        helper = self.plan.helpers.get(name)
        if helper is None or name in self.shim.helper_names:
            return
        self.shim.add_helpers(helper)
        self.bindings.add(format_handle_struct(helper, self.type_table))

    def _visit_function(self, function: Function) -> None:
        plan = self.plan.functions.get(function.name)
        if plan is None or function.name in self._seen_functions:
            return
        self._seen_functions.add(function.name)
        if plan.needs_shim:
            self.shim.add_wrapper(plan)
            self._counts["pointerized"] += 1
        self.bindings.add(format_function_binding(plan, self.type_table))
        self._counts["functions"] += 1

    def _visit_struct(self, struct: StructDef) -> None:
        if not self._claim_type(struct.name):
            return
        if struct.is_union:
            self.bindings.add(format_opaque_struct(struct.name, "union"))
        else:
            self.bindings.add(
                format_mirror_struct(struct, self.symbols, self.type_table)
            )
        self._counts["structs"] += 1
        self._emit_helpers(struct.name)

    def _visit_typedef(self, typedef: Typedef) -> None:
        if typedef.callback is not None:
            if self._claim_type(typedef.name):
                self.bindings.add(
                    [f"comptime {typedef.name} = {wrap_pointer(HOST_VOID, 1)}"]
                )
            return

        context = ErrorContext(typedef.name, typedef.line, typedef.column)
        resolved = self.symbols.resolve(
            typedef.target, typedef.pointer_depth, context, typedef.is_unsigned
        )
        if resolved.kind == KIND_OPAQUE and self._claim_type(resolved.name):
            self.bindings.add(format_opaque_struct(resolved.name))
            self._counts["structs"] += 1
        if resolved.name == typedef.name and resolved.pointer_depth == 0:
            return
        if self._claim_type(typedef.name):
            self.bindings.add(
                [f"comptime {typedef.name} = {host_type(resolved, self.type_table)}"]
            )

    def _visit_enum(self, enum: EnumDef) -> None:
        if enum.name and not self._claim_type(enum.name):
            return
        lines, constants = format_enum(enum, skip=self._seen_constants)
        self._seen_constants.update(name for name, _ in enum.members)
        self.bindings.add(lines)
        self._counts["enums"] += 1
        self._counts["constants"] += constants

    def _visit_define(self, macro: Macro) -> None:
        literal = define_literal(macro)
        if literal is None or macro.name in self._seen_constants:
            return
        self._seen_constants.add(macro.name)
        self.bindings.add([f"comptime {mojo_name(macro.name)} = {literal}"])
        self._counts["constants"] += 1


# ===--- Writer ---=== #

_HEADER_BORDER: str = "x-------------------------------------------x"


@dataclass(frozen=True)
class WriteConfig:
    """Run metadata embedded in both generated files.

    Attributes:
        header_name: File name of the parsed header, e.g. "raylib.h".
        shim_include: Name the shim #includes to reach the original API.
        shim_suffix: Suffix appended to wrapped function names.
    """

    header_name: str
    shim_include: str
    shim_suffix: str = DEFAULT_SHIM_SUFFIX


@dataclass(frozen=True)
class FileWriteResult:
    """Result of writing a single generated file.

    Attributes:
        filename: Filename written, e.g. "raylib.mojo".
        path: Absolute path of the written file.
        line_count: Number of newline characters in the written content.
        byte_count: Number of bytes written (UTF-8 encoded).
    """

    filename: str
    path: Path
    line_count: int
    byte_count: int


def format_file_header(config: WriteConfig, title: str, comment: str = "#") -> list[str]:
    """Return the boxed comment block at the top of a generated file.

    Output format (comment="#"):
        # x-------------------------------------------x #
        # | Mojo bindings for raylib.h
        # | Generated by c-shim-bindings-gen
        # | Source: raylib.h
        # | Shim suffix: _pointerized
        # x-------------------------------------------x #

    Raises:
        ValueError: If config.header_name is empty.
    """
    if not config.header_name:
        raise ValueError("header_name must not be empty")

    border = f"{comment} {_HEADER_BORDER} {comment}"
    return [
        border,
        f"{comment} | {title}",
        f"{comment} | Generated by {GENERATOR_NAME}",
        f"{comment} | Source: {config.header_name}",
        f"{comment} | Shim suffix: {config.shim_suffix}",
        border,
    ]


def write_outputs(outputs: Iterable[tuple[Path, str]]) -> tuple[FileWriteResult, ...]:
    """Stage every output, then rename them into place.

    Each file is staged to a temporary file in its target directory, so a
    failed write leaves every existing output untouched. The renames are
    separate os.replace calls and run last output first: if one of them
    fails, the first output (the one that depends on the others) keeps its
    old contents while later outputs may already be new.

    Args:
        outputs: (target path, content) pairs.

    Returns:
        One FileWriteResult per output, in input order.

    Raises:
        OSError: Propagated after removing any staged temporary files.
    """
    staged: list[tuple[Path, Path, str]] = []
    try:
        for target, content in outputs:
            target = Path(target)
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
            )
            staged.append((Path(tmp_name), target, content))
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
                handle.write(content)
        for tmp_path, target, _content in reversed(staged):
            os.replace(tmp_path, target)
    except OSError:
        for tmp_path, _target, _content in staged:
            tmp_path.unlink(missing_ok=True)
        raise

    return tuple(
        FileWriteResult(
            filename=target.name,
            path=target.resolve(),
            line_count=content.count("\n"),
            byte_count=len(content.encode("utf-8")),
        )
        for _tmp, target, content in staged
    )


# ===--- Pipeline ---=== #


@dataclass(frozen=True)
class GeneratedSources:
    """Both output texts of one run plus what produced them."""

    bindings: str
    shim: str
    declarations: tuple[Declaration, ...]
    plan: TransformationPlan
    counts: GenerationCounts


def generate_sources(
    text: str,
    write_config: WriteConfig,
    type_table: TypeTable = DEFAULT_TYPE_TABLE,
) -> GeneratedSources:
    """Turn header text into bindings and shim text. Pure: no I/O.

    Nothing is rendered unless the whole header parses and analyzes, so a
    failure can never leave one output without the other.

    Raises:
        GenerateError: Any parse, type or signature error in the header.
    """
    declarations = parse_header(text, type_table)
    symbols = SymbolTable.from_declarations(declarations, type_table)
    plan = analyze(declarations, symbols, write_config.shim_suffix)

    driver = OutputDriver(plan, symbols, type_table)
    for decl in iter_declarations(declarations):
        driver.visit(decl)
    driver.finish()

    return GeneratedSources(
        bindings=driver.bindings.render(write_config),
        shim=driver.shim.render(write_config),
        declarations=declarations,
        plan=plan,
        counts=driver.counts,
    )


def build_write_config(config: GenerateConfig) -> WriteConfig:
    return WriteConfig(
        header_name=config.header.name,
        shim_include=config.shim_include,
        shim_suffix=config.shim_suffix,
    )


def run_generate(config: GenerateConfig) -> tuple[FileWriteResult, ...]:
    """Execute the complete generation pipeline for a GenerateConfig.

    Runs parse -> analyze -> emit -> write, printing one line per stage.

    Returns:
        Write results for the bindings file and the shim file, in that order.

    Raises:
        GenerateError: The header is malformed or uses unsupported types.
        OSError: Header not readable or filesystem write failure.
    """
    print(f"Parsing: {config.header}")
    text = config.header.read_text(encoding="utf-8", errors="replace")
    write_config = build_write_config(config)

    sources = generate_sources(text, write_config, config.type_table)
    flat = list(iter_declarations(sources.declarations))
    print(f"  Declarations: {len(flat)} ({len(sources.plan.functions)} functions)")
    print(
        f"  Pointerized: {len(sources.plan.shimmed)} functions, "
        f"{len(sources.plan.helpers)} helper pairs"
    )

    results = write_outputs(
        (
            (config.bindings_out, sources.bindings),
            (config.shim_out, sources.shim),
        )
    )
    total = sum(r.line_count for r in results)
    print(f"  Written: {len(results)} files, {total} lines")

    summary = build_generation_summary(write_config, sources.counts, results)
    print_generation_summary(summary)
    return results


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class GenerationSummary:
    """Complete, immutable data for the post-generation console report.

    Attributes:
        header_name: Parsed header file name.
        shim_suffix: Suffix used for wrapper names.
        counts: What was emitted.
        files: Write results, bindings first.
    """

    header_name: str
    shim_suffix: str
    counts: GenerationCounts
    files: tuple[FileWriteResult, ...]


def build_generation_summary(
    write_config: WriteConfig,
    counts: GenerationCounts,
    files: tuple[FileWriteResult, ...],
) -> GenerationSummary:
    return GenerationSummary(
        header_name=write_config.header_name,
        shim_suffix=write_config.shim_suffix,
        counts=counts,
        files=files,
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    """Render a GenerationSummary to the console report string.

    The pointerized annotation appears only when at least one function
    needed a shim. Line counts use thousands separators. Returns a string
    with exactly one trailing newline.
    """
    counts = summary.counts
    lines: list[str] = []
    lines.append(f"{summary.header_name} bindings generated:")
    lines.append("")

    functions_row = f"    {'Functions:':<15}{counts.functions:>6}"
    if counts.pointerized:
        functions_row += f"  ({counts.pointerized} via *{summary.shim_suffix})"
    lines.append(functions_row)
    lines.append(f"    {'Helper pairs:':<15}{counts.helper_pairs:>6}")
    lines.append(f"    {'Structs:':<15}{counts.structs:>6}")
    lines.append(f"    {'Enums:':<15}{counts.enums:>6}")
    lines.append(f"    {'Constants:':<15}{counts.constants:>6}")

    lines.append("")
    lines.append("  Files written:")
    for file_result in summary.files:
        line_str = f"{file_result.line_count:>6,} lines"
        lines.append(f"    {file_result.filename:<28} {line_str}")

    total_lines = sum(f.line_count for f in summary.files)
    lines.append("")
    lines.append(f"  Total: {total_lines:,} lines across {len(summary.files)} files")
    if len(summary.files) > 1:
        shim_name = summary.files[-1].filename
        lines.append("")
        lines.append(f"  Next: compile {shim_name} against the native library")
    lines.append("")

    return "\n".join(lines)


def print_generation_summary(summary: GenerationSummary) -> None:
    """Print the generation summary to stdout.

    Kept separate so format_generation_summary stays testable without
    stdout capture.
    """
    print(format_generation_summary(summary), end="")


# ===--- Main generation ---=== #


def main(argv: list[str] | None = None) -> None:
    try:
        config = build_config(argv)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}")
        if err.suggestion:
            print(f"Hint: {err.suggestion}")
        raise SystemExit(EXIT_CONFIG_ERROR) from err

    try:
        run_generate(config)
    except GenerateError as err:
        print(f"Error [{err.code}]: {err}")
        raise SystemExit(err.exit_code) from err
    except OSError as err:
        print(f"Error [IO_ERROR]: {err}")
        raise SystemExit(EXIT_CONFIG_ERROR) from err
    except RuntimeError as err:
        print(f"Internal error: {err}")
        raise SystemExit(EXIT_PARSE_ERROR) from err


if __name__ == "__main__":
    main()
