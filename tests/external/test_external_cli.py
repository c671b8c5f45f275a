from __future__ import annotations

from pathlib import Path
import subprocess
import sys

from classfiles import ACC_FINAL, ACC_NATIVE, ACC_STATIC, build_class, write_class, zip_bytes


def _tool_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _run(args: list[str], cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    run_cwd = _tool_root() if cwd is None else cwd
    return subprocess.run(
        [sys.executable, str(_tool_root() / "javah.py"), *args],
        cwd=run_cwd,
        capture_output=True,
        text=True,
        check=False,
    )


def _native_lib() -> bytes:
    return build_class(
        "com.example.NativeLib",
        fields=[("BUFFER_SIZE", "I", ACC_STATIC | ACC_FINAL, 4096)],
        methods=[
            ("open", "(Ljava/lang/String;)J", ACC_STATIC | ACC_NATIVE),
            ("read", "(J[B)I", ACC_NATIVE),
            ("read", "(J[BII)I", ACC_NATIVE),
        ],
    )


def test_t_01_generate_from_class_directory(tmp_path: Path) -> None:
    classes = tmp_path / "classes"
    write_class(classes, "com.example.NativeLib", _native_lib())
    output_dir = tmp_path / "include"

    result = _run(["-cp", str(classes), "-d", str(output_dir), "com.example.NativeLib"])

    assert result.returncode == 0, result.stdout + result.stderr
    header = (output_dir / "com_example_NativeLib.h").read_text(encoding="utf-8")
    assert "#define com_example_NativeLib_BUFFER_1SIZE 4096" in header
    assert "Java_com_example_NativeLib_open\n" in header
    assert "Java_com_example_NativeLib_read__J_3B\n" in header
    assert "Java_com_example_NativeLib_read__J_3BII\n" in header
    assert "JNI headers generated:" in result.stdout


def test_t_02_generate_from_jar_on_class_path(tmp_path: Path) -> None:
    jar = tmp_path / "native.jar"
    jar.write_bytes(zip_bytes({"com/example/NativeLib.class": _native_lib()}))
    output_dir = tmp_path / "include"

    result = _run(["--class-path", str(jar), "-d", str(output_dir), "com.example.NativeLib"])

    assert result.returncode == 0, result.stdout + result.stderr
    assert (output_dir / "com_example_NativeLib.h").is_file()


def test_t_03_missing_class_exits_nonzero_without_output(tmp_path: Path) -> None:
    output_dir = tmp_path / "include"

    result = _run(["-cp", str(tmp_path), "-d", str(output_dir), "com.example.Missing"])

    assert result.returncode == 1
    assert "Not found class com.example.Missing" in result.stderr
    assert not (output_dir / "com_example_Missing.h").exists()


def test_t_04_config_error_exits_nonzero() -> None:
    result = _run([])

    assert result.returncode == 1
    assert "Config error [MISSING_CLASS_NAMES]" in result.stdout


def test_t_05_repeated_runs_are_byte_identical(tmp_path: Path) -> None:
    classes = tmp_path / "classes"
    write_class(classes, "com.example.NativeLib", _native_lib())

    first = _run(["-cp", str(classes), "-d", str(tmp_path / "a"), "com.example.NativeLib"])
    second = _run(["-cp", str(classes), "-d", str(tmp_path / "b"), "com.example.NativeLib"])

    assert first.returncode == second.returncode == 0
    assert (tmp_path / "a" / "com_example_NativeLib.h").read_bytes() == (
        tmp_path / "b" / "com_example_NativeLib.h"
    ).read_bytes()
