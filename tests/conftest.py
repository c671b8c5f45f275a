import sys
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import javah  # noqa: E402
from classfiles import DiagnosticRecorder, build_class, write_class  # noqa: E402


@pytest.fixture
def make_class() -> Callable[..., bytes]:
    return build_class


@pytest.fixture
def class_dir(tmp_path: Path) -> Path:
    root = tmp_path / "classes"
    root.mkdir()
    return root


@pytest.fixture
def add_class(class_dir: Path) -> Callable[..., Path]:
    def _add_class(dotted_name: str, **kwargs: object) -> Path:
        return write_class(class_dir, dotted_name, build_class(dotted_name, **kwargs))

    return _add_class


@pytest.fixture
def search_path(class_dir: Path) -> javah.SearchPath:
    return (javah.DirectorySearchPath(class_dir),)


@pytest.fixture
def diagnostics() -> DiagnosticRecorder:
    return DiagnosticRecorder()


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "include"
