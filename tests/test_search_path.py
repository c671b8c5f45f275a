import os
from collections.abc import Callable
from pathlib import Path

import pytest

import javah
from classfiles import build_class, write_class, zip_bytes

JMOD_HEADER = b"JM\x01\x00"


def _name(text: str) -> javah.QualifiedName:
    return javah.QualifiedName.of(text)


def test_directory_provider_resolves_binary_path(add_class: Callable[..., Path], class_dir: Path) -> None:
    path = add_class("pkg.sub.Thing")

    data = javah.resolve_class(javah.DirectorySearchPath(class_dir), _name("pkg.sub.Thing"))

    assert data == path.read_bytes()


def test_directory_provider_miss_returns_none(class_dir: Path) -> None:
    provider = javah.DirectorySearchPath(class_dir)

    assert javah.resolve_class(provider, _name("pkg.Missing")) is None
    assert javah.resolve_class(javah.DirectorySearchPath(class_dir / "nope"), _name("A")) is None


def test_archive_provider_resolves_jar_entry(tmp_path: Path) -> None:
    data = build_class("pkg.Thing")
    jar = tmp_path / "lib.jar"
    jar.write_bytes(zip_bytes({"pkg/Thing.class": data}))

    provider = javah.ArchiveSearchPath(jar)

    assert javah.resolve_class(provider, _name("pkg.Thing")) == data
    assert javah.resolve_class(provider, _name("pkg.Other")) is None


def test_archive_provider_missing_archive_is_a_miss(tmp_path: Path) -> None:
    provider = javah.ArchiveSearchPath(tmp_path / "absent.jar")

    assert javah.resolve_class(provider, _name("pkg.Thing")) is None


def test_archive_provider_corrupt_archive_raises_class_file_error(tmp_path: Path) -> None:
    jar = tmp_path / "broken.jar"
    jar.write_bytes(b"not a zip at all")

    with pytest.raises(javah.ClassFileError):
        javah.resolve_class(javah.ArchiveSearchPath(jar), _name("pkg.Thing"))


def test_jmod_archive_uses_classes_prefix(tmp_path: Path) -> None:
    data = build_class("pkg.Thing")
    jmod = tmp_path / "pkg.mod.jmod"
    jmod.write_bytes(JMOD_HEADER + zip_bytes({"classes/pkg/Thing.class": data}))

    provider = javah.archive_search_path(jmod)

    assert provider.prefix == javah.JMOD_CLASS_PREFIX
    assert javah.resolve_class(provider, _name("pkg.Thing")) == data


def test_runtime_provider_reads_legacy_rt_jar(tmp_path: Path) -> None:
    data = build_class("java.lang.RuntimeException", super_name="java.lang.Exception")
    rt_jar = tmp_path / "jdk" / "jre" / "lib" / "rt.jar"
    rt_jar.parent.mkdir(parents=True)
    rt_jar.write_bytes(zip_bytes({"java/lang/RuntimeException.class": data}))

    provider = javah.RuntimeSearchPath(tmp_path / "jdk")

    assert javah.resolve_class(provider, _name("java.lang.RuntimeException")) == data


def test_runtime_provider_prefers_named_module_then_java_base(tmp_path: Path) -> None:
    jmods = tmp_path / "jdk" / "jmods"
    jmods.mkdir(parents=True)
    for module in ("java.base", "java.desktop", "aaa.first"):
        (jmods / f"{module}.jmod").write_bytes(
            JMOD_HEADER + zip_bytes({"classes/x/Y.class": build_class("x.Y")})
        )

    archives = javah.runtime_archives(tmp_path / "jdk", "java.desktop")

    assert [a.archive.name for a in archives] == [
        "java.desktop.jmod",
        "java.base.jmod",
        "aaa.first.jmod",
    ]
    assert all(a.prefix == javah.JMOD_CLASS_PREFIX for a in archives)


def test_runtime_provider_without_runtime_is_a_miss(tmp_path: Path) -> None:
    provider = javah.RuntimeSearchPath(tmp_path / "no-jdk")

    assert javah.runtime_archives(tmp_path / "no-jdk") == ()
    assert javah.resolve_class(provider, _name("java.lang.Object")) is None


def test_locate_java_home_prefers_environment(tmp_path: Path) -> None:
    assert javah.locate_java_home({"JAVA_HOME": str(tmp_path)}) == tmp_path


def test_locate_java_home_without_java_returns_none(tmp_path: Path) -> None:
    assert javah.locate_java_home({"PATH": str(tmp_path)}) is None


def test_resolve_class_rejects_unknown_provider() -> None:
    with pytest.raises(TypeError):
        javah.resolve_class(object(), _name("A"))


def test_search_class_returns_first_hit_in_order(tmp_path: Path) -> None:
    first = tmp_path / "first"
    second = tmp_path / "second"
    first_data = build_class("pkg.Thing", super_name="pkg.First")
    second_data = build_class("pkg.Thing", super_name="pkg.Second")
    write_class(first, "pkg.Thing", first_data)
    write_class(second, "pkg.Thing", second_data)
    write_class(second, "pkg.Only", build_class("pkg.Only"))

    search_path = (javah.DirectorySearchPath(first), javah.DirectorySearchPath(second))

    assert javah.search_class(search_path, _name("pkg.Thing")) == first_data
    assert javah.search_class(search_path, _name("pkg.Only")) is not None
    assert javah.search_class(search_path, _name("pkg.None")) is None


def test_parse_class_path_classifies_entries(tmp_path: Path) -> None:
    classes = tmp_path / "classes"
    classes.mkdir()
    jar = tmp_path / "a.jar"
    jar.write_bytes(zip_bytes({}))
    text = os.pathsep.join([str(classes), str(jar), str(tmp_path / "missing"), ""])

    search_path = javah.parse_class_path(text)

    assert search_path == (
        javah.DirectorySearchPath(classes),
        javah.ArchiveSearchPath(jar),
    )


def test_parse_class_path_expands_wildcard_to_sorted_jars(tmp_path: Path) -> None:
    libs = tmp_path / "libs"
    libs.mkdir()
    for name in ("b.jar", "a.jar", "notes.txt"):
        (libs / name).write_bytes(b"")

    search_path = javah.parse_class_path(str(libs) + os.sep + "*")

    assert [p.archive.name for p in search_path] == ["a.jar", "b.jar"]


def test_parse_module_path_reads_module_directory(tmp_path: Path) -> None:
    mods = tmp_path / "mods"
    exploded = mods / "com.example"
    exploded.mkdir(parents=True)
    (exploded / javah.MODULE_INFO).write_bytes(b"")
    (mods / "lib.jar").write_bytes(b"")
    (mods / "other.jmod").write_bytes(b"")
    (mods / "readme.txt").write_bytes(b"")

    search_path = javah.parse_module_path(str(mods))

    assert search_path == (
        javah.DirectorySearchPath(exploded),
        javah.ArchiveSearchPath(mods / "lib.jar"),
        javah.ArchiveSearchPath(mods / "other.jmod", javah.JMOD_CLASS_PREFIX),
    )


def test_build_search_path_orders_module_path_class_path_then_runtime(tmp_path: Path) -> None:
    modular = tmp_path / "m.jar"
    modular.write_bytes(b"")
    config = javah.GenerateConfig(
        class_names=(_name("A"),),
        output_dir=tmp_path,
        class_path=str(tmp_path),
        module_path=str(modular),
    )

    search_path = javah.build_search_path(config)

    assert search_path == (
        javah.ArchiveSearchPath(modular),
        javah.DirectorySearchPath(tmp_path),
        javah.RuntimeSearchPath(),
    )
