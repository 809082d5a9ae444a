import argparse
import sys
import xml.etree.ElementTree as ET
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import glgen  # noqa: E402

FIXED_TIMESTAMP = datetime(2024, 5, 17, 8, 30, 0, tzinfo=timezone.utc)

FIXTURE_GL_XML = GENERATOR_DIR / "tests" / "fixtures" / "gl_minimal.xml"

@pytest.fixture
def gl_xml_path() -> Path:
    return FIXTURE_GL_XML


@pytest.fixture
def registry() -> glgen.Registry:
    return glgen.load_registry(FIXTURE_GL_XML)


@pytest.fixture
def fixed_timestamp() -> datetime:
    return FIXED_TIMESTAMP


@pytest.fixture
def make_args(gl_xml_path: Path, tmp_path: Path) -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "api": "gl",
            "version": None,
            "profile": None,
            "ext": None,
            "all_extensions": False,
            "preserve_names": False,
            "gl_xml": gl_xml_path,
            "output": tmp_path / "out" / "gl.zig",
            "list_versions": False,
            "list_extensions": False,
            "info": None,
            "filter": None,
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args


@pytest.fixture
def make_registry_root() -> Callable[[str], ET.Element]:
    def _make_registry_root(inner_xml: str) -> ET.Element:
        return ET.fromstring(f"<registry>{inner_xml}</registry>")

    return _make_registry_root


@pytest.fixture
def make_emit_config() -> Callable[..., glgen.EmitConfig]:
    def _make_emit_config(
        *,
        api_name: str = "OpenGL 3.2 (Core Profile)",
        version_major: int = 3,
        version_minor: int = 2,
        preserve_names: bool = False,
        generated_at: datetime = FIXED_TIMESTAMP,
    ) -> glgen.EmitConfig:
        return glgen.EmitConfig(
            api_name=api_name,
            version_major=version_major,
            version_minor=version_minor,
            preserve_names=preserve_names,
            generated_at=generated_at,
        )

    return _make_emit_config
