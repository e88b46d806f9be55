from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path

import pytest

import shimgen


def _require_callable(name: str) -> Callable[..., object]:
    symbol = getattr(shimgen, name, None)
    assert callable(symbol), f"Missing pipeline API symbol: shimgen.{name}"
    return symbol


COLOR = (
    "typedef struct { unsigned char r; unsigned char g; "
    "unsigned char b; unsigned char a; } Color;\n"
)
SCENARIO_A = COLOR + "void ClearBackground(Color color);\n"
SCENARIO_B = "int GetRandomValue(int min, int max);\n"
SCENARIO_C_BODY = "int GetRandomValue(int min, int max);\n"
SCENARIO_C = "#ifndef RAYLIB_H\n#define RAYLIB_H\n" + SCENARIO_C_BODY + "#endif\n"
SCENARIO_D = "#if defined(X)\nint f(void);\n"
SCENARIO_E = "void Frob(Frobnicator f);\n"

_FN_RE = re.compile(r"^fn (\w+)\(", re.MULTILINE)


def _fixture_text(fixture_header: Path) -> str:
    return fixture_header.read_text(encoding="utf-8")


# ===--- Scenarios ---=== #


def test_t_01_by_value_parameter_gets_wrapper_helpers_and_handle(
    generate: Callable[[str], shimgen.GeneratedSources],
) -> None:
    sources = generate(SCENARIO_A)

    assert (
        "void ClearBackground_pointerized(Color* color) { ClearBackground(*color); }"
        in sources.shim.splitlines()
    )
    assert "Color* malloc_Color(unsigned char r, unsigned char g, " in sources.shim
    assert "void free_Color(Color* ptr) { free(ptr); }" in sources.shim
    assert 'external_call["ClearBackground_pointerized", NoneType]' in sources.bindings
    assert "struct ColorHandle(Movable):" in sources.bindings
    assert "fn ClearBackground(color: ColorHandle) -> None:" in sources.bindings


def test_t_02_primitive_function_binds_directly(
    generate: Callable[[str], shimgen.GeneratedSources],
) -> None:
    sources = generate(SCENARIO_B)

    assert "GetRandomValue" not in sources.shim
    assert "malloc_" not in sources.shim
    assert sources.bindings.splitlines()[-2:] == [
        "fn GetRandomValue(min: c_int, max: c_int) -> c_int:",
        '    return external_call["GetRandomValue", c_int](min, max)',
    ]
    assert "from ffi import external_call, c_int" in sources.bindings


def test_t_03_include_guard_changes_nothing(
    generate: Callable[[str], shimgen.GeneratedSources],
) -> None:
    guarded = generate(SCENARIO_C)
    bare = generate(SCENARIO_C_BODY)

    assert guarded.bindings == bare.bindings
    assert guarded.shim == bare.shim


def test_t_04_unterminated_block_fails_with_position(
    generate: Callable[[str], shimgen.GeneratedSources],
) -> None:
    with pytest.raises(shimgen.UnterminatedMacroBlockError) as excinfo:
        generate(SCENARIO_D)

    assert (excinfo.value.line, excinfo.value.column) == (1, 1)


def test_t_05_undeclared_parameter_type_fails(
    generate: Callable[[str], shimgen.GeneratedSources],
) -> None:
    with pytest.raises(shimgen.UnresolvedAggregateError) as excinfo:
        generate(SCENARIO_E)

    assert excinfo.value.type_name == "Frobnicator"
    assert excinfo.value.context == "Frob"


# ===--- Output properties ---=== #


def test_t_06_each_helper_pair_is_emitted_once(
    generate: Callable[[str], shimgen.GeneratedSources],
) -> None:
    sources = generate(
        COLOR
        + "void ClearBackground(Color color);\n"
        + "void DrawPixel(int x, int y, Color color);\n"
        + "Color Fade(Color color, float alpha);\n"
        + "Color GetColor(unsigned int hexValue);\n"
    )

    assert sources.shim.count("Color* malloc_Color(") == 1
    assert sources.shim.count("void free_Color(") == 1
    assert sources.bindings.count("struct ColorHandle(Movable):") == 1
    assert sources.counts.helper_pairs == 1
    assert sources.counts.pointerized == 4


def test_t_07_bindings_follow_declaration_order(
    generate: Callable[[str], shimgen.GeneratedSources],
    fixture_header: Path,
) -> None:
    text = _fixture_text(fixture_header)
    sources = generate(text)

    declared = [
        d.name
        for d in shimgen.iter_declarations(shimgen.parse_header(text))
        if isinstance(d, shimgen.Function)
    ]
    assert _FN_RE.findall(sources.bindings) == declared


def test_t_08_generation_is_deterministic(
    generate: Callable[[str], shimgen.GeneratedSources],
    fixture_header: Path,
) -> None:
    text = _fixture_text(fixture_header)

    first = generate(text)
    second = generate(text)

    assert first.bindings == second.bindings
    assert first.shim == second.shim


def test_t_09_duplicate_declarations_bind_once(
    generate: Callable[[str], shimgen.GeneratedSources],
) -> None:
    sources = generate(
        "#if defined(A)\n"
        "typedef struct Size { int w; } Size;\n"
        "int f(int a);\n"
        "#define LIMIT 4\n"
        "#else\n"
        "typedef struct Size { int w; } Size;\n"
        "int f(int a);\n"
        "#define LIMIT 8\n"
        "#endif\n"
    )

    assert _FN_RE.findall(sources.bindings) == ["f"]
    assert sources.bindings.count("struct Size(Copyable, Movable):") == 1
    assert "comptime LIMIT = 4" in sources.bindings
    assert "LIMIT = 8" not in sources.bindings


def test_t_10_fixture_header_counts(
    generate: Callable[[str], shimgen.GeneratedSources],
    fixture_header: Path,
) -> None:
    sources = generate(_fixture_text(fixture_header))

    assert sources.counts == shimgen.GenerationCounts(
        functions=19,
        pointerized=10,
        helper_pairs=6,
        structs=8,
        enums=2,
        constants=12,
    )
    assert sources.plan.helper_names == (
        "Color",
        "Camera2D",
        "Vector2",
        "Rectangle",
        "Vector4",
        "AudioStream",
    )


def test_t_11_fixture_bindings_cover_every_declaration_kind(
    generate: Callable[[str], shimgen.GeneratedSources],
    fixture_header: Path,
) -> None:
    text = generate(_fixture_text(fixture_header)).bindings
    bindings = text.splitlines()

    assert 'comptime RAYLIB_VERSION = "5.0"' in bindings
    assert "comptime MAX_TOUCH_POINTS = 10" in bindings
    assert "comptime Quaternion = Vector4" in bindings
    assert "comptime Camera = Camera2D" in bindings
    assert (
        "comptime TraceLogCallback = UnsafePointer[NoneType, MutAnyOrigin]"
    ) in bindings
    assert "comptime TraceLogLevel = c_int" in bindings
    assert "comptime LOG_NONE: c_int = 7" in bindings
    assert "comptime KEY_B: c_int = 66" in bindings
    assert "struct rAudioBuffer(Copyable, Movable):" in bindings
    assert "    var buffer: UnsafePointer[rAudioBuffer, MutAnyOrigin]" in bindings
    assert "fn QuaternionIdentity() -> Vector4Handle:" in bindings
    assert (
        "fn LoadFileData(fileName: UnsafePointer[c_char, ImmutAnyOrigin], "
        "dataSize: UnsafePointer[c_int, MutAnyOrigin]) "
        "-> UnsafePointer[UInt8, MutAnyOrigin]:"
    ) in bindings
    assert "# TraceLog is variadic; only its fixed parameters are bound." in bindings
    assert "comptime bool" not in text
    assert "comptime true" not in text


def test_t_12_fixture_shim_wraps_aliased_return(
    generate: Callable[[str], shimgen.GeneratedSources],
    fixture_header: Path,
) -> None:
    shim = generate(_fixture_text(fixture_header)).shim.splitlines()

    assert (
        "Quaternion* QuaternionIdentity_pointerized(void) { "
        "Quaternion* result = (Quaternion*)malloc(sizeof(Quaternion)); "
        "*result = QuaternionIdentity(); return result; }"
    ) in shim
    assert "    ptr->offset = *offset;" in shim
    assert (
        "AudioStream* malloc_AudioStream(rAudioBuffer* buffer, "
        "unsigned int sampleRate, unsigned int channels) {"
    ) in shim


def test_t_13_suffix_is_configurable(fixture_header: Path) -> None:
    sources = shimgen.generate_sources(
        _fixture_text(fixture_header),
        shimgen.WriteConfig("raylib.h", "raylib.h", shim_suffix="_ptr"),
    )

    assert "void ClearBackground_ptr(Color* color) { ClearBackground(*color); }" in (
        sources.shim.splitlines()
    )
    assert "_pointerized" not in sources.shim
    assert "// | Shim suffix: _ptr" in sources.shim.splitlines()


# ===--- Writing ---=== #


def test_t_14_run_generate_writes_both_files(
    make_args: Callable[..., object],
    existing_paths: dict[str, Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    run_generate = _require_callable("run_generate")
    config = shimgen.validate_config(make_args())

    results = run_generate(config)

    assert [r.filename for r in results] == ["api.mojo", "api_shim.c"]
    assert existing_paths["bindings_out"].exists()
    assert existing_paths["shim_out"].exists()
    assert results[0].line_count == existing_paths["bindings_out"].read_text(
        encoding="utf-8"
    ).count("\n")
    out = capsys.readouterr().out
    assert out.startswith(f"Parsing: {existing_paths['header']}\n")
    assert "  Pointerized: 0 functions, 0 helper pairs" in out
    assert "api.h bindings generated:" in out


def test_t_15_failed_generation_writes_nothing(
    make_args: Callable[..., object],
    existing_paths: dict[str, Path],
    capsys: pytest.CaptureFixture[str],
) -> None:
    existing_paths["header"].write_text(SCENARIO_D, encoding="utf-8")
    config = shimgen.validate_config(make_args())

    with pytest.raises(shimgen.UnterminatedMacroBlockError):
        shimgen.run_generate(config)

    assert not existing_paths["bindings_out"].exists()
    assert not existing_paths["shim_out"].exists()
    capsys.readouterr()


def test_t_16_write_outputs_removes_staged_files_on_failure(tmp_path: Path) -> None:
    output_dir = tmp_path / "out"
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(OSError):
        shimgen.write_outputs(
            (
                (output_dir / "api.mojo", "fn a() -> None:\n"),
                (blocker / "api_shim.c", "void a(void);\n"),
            )
        )

    assert list(output_dir.iterdir()) == []


def test_t_17_write_outputs_replaces_existing_files(tmp_path: Path) -> None:
    target = tmp_path / "api.mojo"
    target.write_text("stale\n", encoding="utf-8")

    (result,) = shimgen.write_outputs(((target, "fresh\nlines\n"),))

    assert target.read_text(encoding="utf-8") == "fresh\nlines\n"
    assert result.line_count == 2
    assert result.byte_count == len("fresh\nlines\n")
    assert result.path == target.resolve()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["api.mojo"]


def test_t_18_failed_rename_leaves_first_output_untouched(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    bindings = tmp_path / "api.mojo"
    shim = tmp_path / "api_shim.c"
    bindings.write_text("old bindings\n", encoding="utf-8")
    shim.write_text("old shim\n", encoding="utf-8")
    real_replace = shimgen.os.replace

    def _replace(src: Path, dst: Path) -> None:
        if Path(dst) == bindings:
            raise OSError("rename failed")
        real_replace(src, dst)

    monkeypatch.setattr(shimgen.os, "replace", _replace)

    with pytest.raises(OSError):
        shimgen.write_outputs(((bindings, "new bindings\n"), (shim, "new shim\n")))

    assert bindings.read_text(encoding="utf-8") == "old bindings\n"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["api.mojo", "api_shim.c"]


# ===--- Type declarations ---=== #


@pytest.mark.parametrize(
    "header_text",
    [
        "void Frob(struct Frobnicator *f);\n",
        "void Frob(struct Frobnicator f);\n",
    ],
)
def test_t_19_undeclared_tagged_parameter_fails(
    generate: Callable[[str], shimgen.GeneratedSources], header_text: str
) -> None:
    with pytest.raises(shimgen.UnresolvedAggregateError) as excinfo:
        generate(header_text)

    assert excinfo.value.type_name == "Frobnicator"
    assert excinfo.value.context == "Frob"


def test_t_20_forward_declared_tagged_parameter_passes_through(
    generate: Callable[[str], shimgen.GeneratedSources],
) -> None:
    sources = generate("struct Frobnicator;\nvoid Frob(struct Frobnicator *f);\n")

    assert "Frob" not in sources.shim
    assert (
        "fn Frob(f: UnsafePointer[Frobnicator, MutAnyOrigin]) -> None:"
        in sources.bindings.splitlines()
    )


def test_t_21_deeply_nested_header_generates(
    generate: Callable[[str], shimgen.GeneratedSources],
) -> None:
    depth = 200
    body = "int GetRandomValue(int min, int max);\n"

    sources = generate("#if A\n" * depth + body + "#endif\n" * depth)

    assert _FN_RE.findall(sources.bindings) == ["GetRandomValue"]
