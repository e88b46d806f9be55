import argparse
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import shimgen  # noqa: E402

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def fixture_header() -> Path:
    return FIXTURES_DIR / "mini_raylib.h"


@pytest.fixture
def existing_paths(tmp_path: Path) -> dict[str, Path]:
    header = tmp_path / "api.h"
    header.write_text("int GetRandomValue(int min, int max);\n", encoding="utf-8")

    output_dir = tmp_path / "out"
    return {
        "header": header,
        "bindings_out": output_dir / "api.mojo",
        "shim_out": output_dir / "api_shim.c",
    }


@pytest.fixture
def missing_path(tmp_path: Path) -> Path:
    return tmp_path / "missing"


@pytest.fixture
def make_args(existing_paths: dict[str, Path]) -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "command": "generate",
            "header": existing_paths["header"],
            "bindings_out": existing_paths["bindings_out"],
            "shim_out": existing_paths["shim_out"],
            "suffix": shimgen.DEFAULT_SHIM_SUFFIX,
            "include": None,
            "type_table": None,
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args


@pytest.fixture
def write_config() -> shimgen.WriteConfig:
    return shimgen.WriteConfig(header_name="api.h", shim_include="api.h")


@pytest.fixture
def generate(
    write_config: shimgen.WriteConfig,
) -> Callable[[str], shimgen.GeneratedSources]:
    def _generate(text: str) -> shimgen.GeneratedSources:
        return shimgen.generate_sources(text, write_config)

    return _generate


@pytest.fixture
def make_symbols() -> Callable[[str], shimgen.SymbolTable]:
    def _make_symbols(text: str) -> shimgen.SymbolTable:
        return shimgen.SymbolTable.from_declarations(shimgen.parse_header(text))

    return _make_symbols


@pytest.fixture
def plan_for() -> Callable[[str], shimgen.TransformationPlan]:
    def _plan_for(text: str) -> shimgen.TransformationPlan:
        declarations = shimgen.parse_header(text)
        symbols = shimgen.SymbolTable.from_declarations(declarations)
        return shimgen.analyze(declarations, symbols)

    return _plan_for
