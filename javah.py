"""JNI header generator.

Reads compiled class files and writes the C header a native implementation
must satisfy: one `#define` per compile-time constant and one `JNIEXPORT`
prototype per native method, named with the JNI mangling scheme.

Usage:
    javah -cp build/classes -d build/include com.example.NativeLib
"""

import argparse
import contextlib
import os
import shutil
import struct
import sys
import zipfile
import zlib
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path

__version__ = "0.2.0"

DEFAULT_OUTPUT_DIR = Path(".")
DEFAULT_CLASS_PATH = "."


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    class_names: tuple["QualifiedName", ...]
    output_dir: Path
    class_path: str
    module_path: str | None


VALID_ERROR_CODES = {
    "MISSING_CLASS_NAMES",
    "INVALID_CLASS_NAME",
    "PATH_NOT_FOUND",
    "OUTPUT_NOT_DIRECTORY",
}


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="javah",
        description="Generate JNI headers from compiled class files",
    )

    parser.add_argument("classes", nargs="*", metavar="CLASS")
    parser.add_argument(
        "-d", "--output-dir", dest="output_dir", type=Path, default=DEFAULT_OUTPUT_DIR
    )
    parser.add_argument(
        "-cp",
        "-classpath",
        "--class-path",
        dest="class_path",
        type=str,
        default=None,
    )
    parser.add_argument(
        "-p", "--module-path", dest="module_path", type=str, default=None
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def parse_class_names(raw_names: Iterable[str]) -> tuple["QualifiedName", ...]:
    names: list[QualifiedName] = []
    for raw in raw_names:
        try:
            names.append(QualifiedName.of(raw))
        except ValueError as err:
            raise ConfigError(
                "INVALID_CLASS_NAME",
                f"Invalid class name: {raw}",
                "Pass fully qualified names such as com.example.Foo "
                "or java.base/java.lang.Object.",
            ) from err
    return tuple(names)


def validate_module_path(raw: str | None) -> str | None:
    if raw is None:
        return None
    for entry in raw.split(os.pathsep):
        if entry and not Path(entry).exists():
            raise ConfigError(
                "PATH_NOT_FOUND",
                f"Module path entry does not exist: {entry}",
                "Provide existing directories, modular jars or jmod files.",
            )
    return raw


def validate_config(args: argparse.Namespace) -> GenerateConfig:
    if not args.classes:
        raise ConfigError(
            "MISSING_CLASS_NAMES",
            "No classes given.",
            "Pass one or more fully qualified class names.",
        )
    class_names = parse_class_names(args.classes)

    output_dir = Path(args.output_dir)
    if output_dir.exists() and not output_dir.is_dir():
        raise ConfigError(
            "OUTPUT_NOT_DIRECTORY",
            f"Output path is not a directory: {output_dir}",
            "Point -d at a directory (it is created if absent).",
        )

    class_path = args.class_path
    if class_path is None:
        class_path = os.environ.get("CLASSPATH") or DEFAULT_CLASS_PATH

    return GenerateConfig(
        class_names=class_names,
        output_dir=output_dir,
        class_path=class_path,
        module_path=validate_module_path(args.module_path),
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig:
    return validate_config(parse_args(argv))


# ===--- Errors and diagnostics ---=== #


class ClassFileError(Exception):
    """Class bytes are malformed or could not be read."""


class UnsupportedDescriptorError(ValueError):
    """A descriptor outside the JNI mapping table, or of the wrong shape."""


Diagnostics = Callable[[str], None]


def no_diagnostics(line: str) -> None:
    return None


def stderr_diagnostics(line: str) -> None:
    print(line, file=sys.stderr)


def report_exception(diagnostics: Diagnostics, err: BaseException) -> None:
    diagnostics(f"  {type(err).__name__}: {err}")


# ===--- Qualified names ---=== #

_RESERVED_NAME_CHARS = frozenset(";[/")


@dataclass(frozen=True)
class QualifiedName:
    """Dotted class name, optionally qualified by its module.

    `QualifiedName.of("java.base/java.lang.Object")` carries the module
    so runtime lookups can try that module first. Equality and hashing use
    the canonical dotted form.
    """

    class_name: str
    module: str | None = field(default=None, compare=False)

    @classmethod
    def of(cls, text: str) -> "QualifiedName":
        module, sep, class_name = text.partition("/")
        if not sep:
            module, class_name = None, text
        elif not _valid_dotted(module):
            raise ValueError(f"Invalid module name in {text!r}")
        if not _valid_dotted(class_name):
            raise ValueError(f"Invalid class name {text!r}")
        return cls(class_name, module)

    @classmethod
    def from_binary_name(cls, binary_name: str) -> "QualifiedName":
        return cls(binary_name.replace("/", "."))

    @property
    def binary_name(self) -> str:
        return self.class_name.replace(".", "/")

    @property
    def simple_name(self) -> str:
        return self.class_name.rpartition(".")[2]

    @cached_property
    def mangled_name(self) -> str:
        return mangle_class_name(self.class_name)

    def __str__(self) -> str:
        if self.module:
            return f"{self.module}/{self.class_name}"
        return self.class_name


def _valid_dotted(text: str) -> bool:
    if not text:
        return False
    for segment in text.split("."):
        if not segment or any(ch in _RESERVED_NAME_CHARS for ch in segment):
            return False
        if any(ch.isspace() for ch in segment):
            return False
    return True


# ===--- Type descriptors ---=== #

KIND_PRIMITIVE = "primitive"
KIND_ARRAY = "array"
KIND_REFERENCE = "reference"
KIND_METHOD = "method"

FIELD_PRIMITIVE_CODES = frozenset("ZBCSIJFD")
VOID_CODE = "V"


def _field_type_end(text: str, start: int) -> int:
    """Return the index just past the field type that begins at `start`."""
    pos = start
    while pos < len(text) and text[pos] == "[":
        pos += 1
    if pos >= len(text):
        raise UnsupportedDescriptorError(f"Truncated descriptor: {text!r}")
    code = text[pos]
    if code == "L":
        end = text.find(";", pos)
        if end <= pos + 1:
            raise UnsupportedDescriptorError(f"Malformed reference type in {text!r}")
        return end + 1
    if code in FIELD_PRIMITIVE_CODES:
        return pos + 1
    raise UnsupportedDescriptorError(f"Unknown type code {code!r} in {text!r}")


@dataclass(frozen=True)
class TypeDescriptor:
    """A JVM type or method descriptor, parsed on demand.

    Field types are primitive codes, `[`-prefixed arrays or `L<binary>;`
    references; method descriptors are `(<args>)<ret>`. Malformed text
    raises UnsupportedDescriptorError from whichever property first needs
    the parse.
    """

    text: str

    @cached_property
    def kind(self) -> str:
        text = self.text
        if text == VOID_CODE:
            return KIND_PRIMITIVE
        if text.startswith("("):
            self._method_parts
            return KIND_METHOD
        if _field_type_end(text, 0) != len(text):
            raise UnsupportedDescriptorError(f"Trailing characters in {text!r}")
        if text[0] == "[":
            return KIND_ARRAY
        if text[0] == "L":
            return KIND_REFERENCE
        return KIND_PRIMITIVE

    @property
    def is_method(self) -> bool:
        return self.kind == KIND_METHOD

    @property
    def element_type(self) -> "TypeDescriptor":
        if self.kind != KIND_ARRAY:
            raise UnsupportedDescriptorError(f"{self.text} is not an array type")
        return TypeDescriptor(self.text[1:])

    @property
    def class_name(self) -> QualifiedName:
        if self.kind != KIND_REFERENCE:
            raise UnsupportedDescriptorError(f"{self.text} is not a reference type")
        return QualifiedName.from_binary_name(self.text[1:-1])

    @cached_property
    def _method_parts(self) -> tuple[tuple[str, ...], str]:
        text = self.text
        if not text.startswith("("):
            raise UnsupportedDescriptorError(f"{text} is not a method descriptor")
        args: list[str] = []
        pos = 1
        while pos < len(text) and text[pos] != ")":
            end = _field_type_end(text, pos)
            args.append(text[pos:end])
            pos = end
        if pos >= len(text):
            raise UnsupportedDescriptorError(f"Unterminated argument list in {text!r}")
        ret = text[pos + 1 :]
        if ret != VOID_CODE and (not ret or _field_type_end(ret, 0) != len(ret)):
            raise UnsupportedDescriptorError(f"Malformed return type in {text!r}")
        return tuple(args), ret

    @property
    def argument_types(self) -> tuple["TypeDescriptor", ...]:
        return tuple(TypeDescriptor(arg) for arg in self._method_parts[0])

    @property
    def return_type(self) -> "TypeDescriptor":
        return TypeDescriptor(self._method_parts[1])

    @property
    def arguments_text(self) -> str:
        """Argument descriptors concatenated without separators."""
        return "".join(self._method_parts[0])

    def __str__(self) -> str:
        return self.text


# ===--- Name mangling ---=== #

_MANGLE_ESCAPES = {
    "_": "_1",
    ";": "_2",
    "[": "_3",
    ".": "_",
    "/": "_",
}


def _utf16_units(ch: str) -> tuple[int, ...]:
    data = ch.encode("utf-16-be", "surrogatepass")
    return struct.unpack(f">{len(data) // 2}H", data)


def mangle(text: str) -> str:
    """Escape `text` into the JNI symbol alphabet.

    ASCII letters and digits pass through. `_`, `;` and `[` become `_1`,
    `_2` and `_3`; the qualifier separators `.` and `/` become `_`. Every
    other character is written as `_0XXXX` per UTF-16 code unit, so a
    supplementary character yields two escapes.
    """
    out: list[str] = []
    for ch in text:
        escaped = _MANGLE_ESCAPES.get(ch)
        if escaped is not None:
            out.append(escaped)
        elif ch.isascii() and ch.isalnum():
            out.append(ch)
        else:
            out.extend(f"_0{unit:04X}" for unit in _utf16_units(ch))
    return "".join(out)


def mangle_class_name(class_name: str) -> str:
    return mangle(class_name)


def short_mangled_method_name(class_name: str, method_name: str) -> str:
    return f"Java_{mangle_class_name(class_name)}_{mangle(method_name)}"


def long_mangled_method_name(
    class_name: str, method_name: str, descriptor: TypeDescriptor
) -> str:
    suffix = mangle(descriptor.arguments_text)
    return f"{short_mangled_method_name(class_name, method_name)}__{suffix}"


def exported_symbol_name(
    class_name: str, method_name: str, descriptor: TypeDescriptor, overloaded: bool
) -> str:
    if overloaded:
        return long_mangled_method_name(class_name, method_name, descriptor)
    return short_mangled_method_name(class_name, method_name)


def escape_signature(text: str) -> str:
    """Render a descriptor as printable ASCII for a header comment."""
    out: list[str] = []
    for ch in text:
        if " " <= ch <= "~":
            out.append(ch)
        else:
            out.extend(f"\\u{unit:04X}" for unit in _utf16_units(ch))
    return "".join(out)


# ===--- Class metadata ---=== #

ACC_STATIC = 0x0008
ACC_FINAL = 0x0010
ACC_NATIVE = 0x0100
ACC_SYNTHETIC = 0x1000

STRING_DESCRIPTOR = "Ljava/lang/String;"
CONSTANT_FIELD_DESCRIPTORS = frozenset(FIELD_PRIMITIVE_CODES | {STRING_DESCRIPTOR})


@dataclass(frozen=True)
class Constant:
    name: str
    descriptor: TypeDescriptor
    value: int | float | str

    @property
    def mangled_name(self) -> str:
        return mangle(self.name)

    def value_to_string(self) -> str:
        """Return the C literal for the constant value."""
        code = self.descriptor.text
        if code == "J":
            return f"{self.value}LL"
        if code == "F":
            return _float_literal(float(self.value), single=True)
        if code == "D":
            return _float_literal(float(self.value), single=False)
        if code == STRING_DESCRIPTOR:
            return _c_string_literal(str(self.value))
        return str(int(self.value))


def _float_literal(value: float, single: bool) -> str:
    suffix = "f" if single else ""
    if value != value:
        return f"(0.0{suffix}/0.0{suffix})"
    if value in (float("inf"), float("-inf")):
        sign = "-" if value < 0 else ""
        return f"({sign}1.0{suffix}/0.0{suffix})"
    text = _shortest_float32(value) if single else repr(value)
    if "." not in text and "e" not in text:
        text += ".0"
    return text + suffix


def _shortest_float32(value: float) -> str:
    for digits in range(1, 10):
        text = f"{value:.{digits}g}"
        try:
            round_trip = struct.unpack(">f", struct.pack(">f", float(text)))[0]
        except OverflowError:
            continue
        if round_trip == value:
            return text
    return repr(value)


_C_STRING_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\t": "\\t", "\r": "\\r"}


def _c_string_literal(text: str) -> str:
    out: list[str] = []
    for ch in text:
        if ch in _C_STRING_ESCAPES:
            out.append(_C_STRING_ESCAPES[ch])
        elif " " <= ch <= "~":
            out.append(ch)
        else:
            out.extend(
                f"\\{byte:03o}" for byte in ch.encode("utf-8", "surrogatepass")
            )
    return '"' + "".join(out) + '"'


@dataclass(frozen=True)
class NativeMethod:
    name: str
    descriptor: TypeDescriptor
    is_static: bool

    @property
    def mangled_name(self) -> str:
        return mangle(self.name)

    @property
    def long_mangled_name(self) -> str:
        return f"{self.mangled_name}__{mangle(self.descriptor.arguments_text)}"


@dataclass(frozen=True)
class ClassMetaInfo:
    """Everything the header needs from one class file.

    Constants and methods keep class-file declaration order; the emitted
    header follows that order exactly.
    """

    super_class: QualifiedName | None
    constants: tuple[Constant, ...]
    methods: tuple[NativeMethod, ...]

    @cached_property
    def overloaded_names(self) -> frozenset[str]:
        return find_overloaded_names(self.methods)

    def is_overloaded(self, method: NativeMethod) -> bool:
        return method.name in self.overloaded_names


# ===--- Overload resolution ---=== #


def find_overloaded_names(methods: Iterable[NativeMethod]) -> frozenset[str]:
    counts = Counter(method.name for method in methods)
    return frozenset(name for name, count in counts.items() if count > 1)


def is_overloaded(method: NativeMethod, methods: Iterable[NativeMethod]) -> bool:
    return method.name in find_overloaded_names(methods)


# ===--- Class-file parsing ---=== #

CLASS_FILE_MAGIC = 0xCAFEBABE

CONSTANT_Utf8 = 1
CONSTANT_Integer = 3
CONSTANT_Float = 4
CONSTANT_Long = 5
CONSTANT_Double = 6
CONSTANT_Class = 7
CONSTANT_String = 8
CONSTANT_Fieldref = 9
CONSTANT_Methodref = 10
CONSTANT_InterfaceMethodref = 11
CONSTANT_NameAndType = 12
CONSTANT_MethodHandle = 15
CONSTANT_MethodType = 16
CONSTANT_Dynamic = 17
CONSTANT_InvokeDynamic = 18
CONSTANT_Module = 19
CONSTANT_Package = 20

# Payload sizes of the entries whose contents are never needed.
_SKIPPED_ENTRY_SIZES = {
    CONSTANT_Fieldref: 4,
    CONSTANT_Methodref: 4,
    CONSTANT_InterfaceMethodref: 4,
    CONSTANT_NameAndType: 4,
    CONSTANT_MethodHandle: 3,
    CONSTANT_MethodType: 2,
    CONSTANT_Dynamic: 4,
    CONSTANT_InvokeDynamic: 4,
    CONSTANT_Module: 2,
    CONSTANT_Package: 2,
}

CONSTANT_VALUE_ATTRIBUTE = "ConstantValue"

_CONSTANT_VALUE_TAGS = {
    "Z": CONSTANT_Integer,
    "B": CONSTANT_Integer,
    "C": CONSTANT_Integer,
    "S": CONSTANT_Integer,
    "I": CONSTANT_Integer,
    "J": CONSTANT_Long,
    "F": CONSTANT_Float,
    "D": CONSTANT_Double,
    "Ljava/lang/String;": CONSTANT_String,
}


@dataclass(frozen=True)
class RawField:
    name: str
    descriptor: str
    access_flags: int
    constant_value: int | float | str | None = None


@dataclass(frozen=True)
class RawMethod:
    name: str
    descriptor: str
    access_flags: int


@dataclass(frozen=True)
class RawClassFile:
    """Structural view of a class file: names, flags, fields and methods."""

    this_class: str
    super_class: str | None
    access_flags: int
    interfaces: tuple[str, ...]
    fields: tuple[RawField, ...]
    methods: tuple[RawMethod, ...]
    major_version: int
    minor_version: int


class _ClassFileCursor:
    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def take(self, size: int) -> bytes:
        end = self.pos + size
        if end > len(self.data):
            raise ClassFileError(
                f"Truncated class file: needed {size} bytes at offset {self.pos}"
            )
        chunk = self.data[self.pos : end]
        self.pos = end
        return chunk

    def u1(self) -> int:
        return self.take(1)[0]

    def u2(self) -> int:
        return struct.unpack(">H", self.take(2))[0]

    def u4(self) -> int:
        return struct.unpack(">I", self.take(4))[0]

    def unpack(self, fmt: str, size: int):
        return struct.unpack(fmt, self.take(size))[0]


def decode_modified_utf8(data: bytes) -> str:
    """Decode a class-file Utf8 constant.

    Modified UTF-8 writes NUL as C0 80 and supplementary characters as two
    separately encoded surrogates; both are folded back to normal text.
    """
    try:
        text = data.replace(b"\xc0\x80", b"\x00").decode("utf-8", "surrogatepass")
    except UnicodeDecodeError as err:
        raise ClassFileError(f"Malformed Utf8 constant: {err}") from err
    return text.encode("utf-16-le", "surrogatepass").decode(
        "utf-16-le", "surrogatepass"
    )


def _read_constant_pool(cursor: _ClassFileCursor) -> list[tuple[int, object] | None]:
    count = cursor.u2()
    pool: list[tuple[int, object] | None] = [None] * max(count, 1)
    index = 1
    while index < count:
        tag = cursor.u1()
        if tag == CONSTANT_Utf8:
            pool[index] = (tag, decode_modified_utf8(cursor.take(cursor.u2())))
        elif tag == CONSTANT_Integer:
            pool[index] = (tag, cursor.unpack(">i", 4))
        elif tag == CONSTANT_Float:
            pool[index] = (tag, cursor.unpack(">f", 4))
        elif tag == CONSTANT_Long:
            pool[index] = (tag, cursor.unpack(">q", 8))
            index += 1
        elif tag == CONSTANT_Double:
            pool[index] = (tag, cursor.unpack(">d", 8))
            index += 1
        elif tag in (CONSTANT_Class, CONSTANT_String):
            pool[index] = (tag, cursor.u2())
        elif tag in _SKIPPED_ENTRY_SIZES:
            cursor.take(_SKIPPED_ENTRY_SIZES[tag])
            pool[index] = (tag, None)
        else:
            raise ClassFileError(f"Unknown constant pool tag {tag} at entry {index}")
        index += 1
    return pool


class _ConstantPool:
    def __init__(self, entries: list[tuple[int, object] | None]):
        self.entries = entries

    def entry(self, index: int, expected_tag: int) -> object:
        if not 0 < index < len(self.entries):
            raise ClassFileError(f"Constant pool index {index} out of range")
        entry = self.entries[index]
        if entry is None or entry[0] != expected_tag:
            raise ClassFileError(
                f"Constant pool entry {index} is not of tag {expected_tag}"
            )
        return entry[1]

    def utf8(self, index: int) -> str:
        return self.entry(index, CONSTANT_Utf8)

    def class_name(self, index: int) -> str:
        return self.utf8(self.entry(index, CONSTANT_Class))

    def constant_value(self, index: int, descriptor: str) -> int | float | str:
        if not 0 < index < len(self.entries) or self.entries[index] is None:
            raise ClassFileError(f"Bad ConstantValue index {index}")
        tag, value = self.entries[index]
        expected = _CONSTANT_VALUE_TAGS.get(descriptor)
        if expected is not None and tag != expected:
            raise ClassFileError(
                f"ConstantValue entry {index} has tag {tag}, "
                f"expected {expected} for a {descriptor} field"
            )
        if tag == CONSTANT_String:
            return self.utf8(value)
        if tag in (CONSTANT_Integer, CONSTANT_Float, CONSTANT_Long, CONSTANT_Double):
            return value
        raise ClassFileError(f"ConstantValue entry {index} has tag {tag}")


def _read_member(cursor: _ClassFileCursor, pool: _ConstantPool, is_field: bool):
    access_flags = cursor.u2()
    name = pool.utf8(cursor.u2())
    descriptor = pool.utf8(cursor.u2())
    constant_value = None
    for _ in range(cursor.u2()):
        attr_name = pool.utf8(cursor.u2())
        length = cursor.u4()
        if is_field and attr_name == CONSTANT_VALUE_ATTRIBUTE and length == 2:
            constant_value = pool.constant_value(cursor.u2(), descriptor)
        else:
            # Code, debug and frame attributes are skipped unread.
            cursor.take(length)
    if is_field:
        return RawField(name, descriptor, access_flags, constant_value)
    return RawMethod(name, descriptor, access_flags)


def parse_class_file(data: bytes) -> RawClassFile:
    """Parse the structure of a class file without touching bytecode.

    Raises:
        ClassFileError: Bad magic, truncated input, or an inconsistent
            constant pool.
    """
    cursor = _ClassFileCursor(data)
    magic = cursor.u4()
    if magic != CLASS_FILE_MAGIC:
        raise ClassFileError(f"Bad magic number 0x{magic:08X}")
    minor_version = cursor.u2()
    major_version = cursor.u2()
    pool = _ConstantPool(_read_constant_pool(cursor))

    access_flags = cursor.u2()
    this_class = pool.class_name(cursor.u2())
    super_index = cursor.u2()
    super_class = pool.class_name(super_index) if super_index else None
    interfaces = tuple(pool.class_name(cursor.u2()) for _ in range(cursor.u2()))
    fields = tuple(_read_member(cursor, pool, True) for _ in range(cursor.u2()))
    methods = tuple(_read_member(cursor, pool, False) for _ in range(cursor.u2()))

    return RawClassFile(
        this_class=this_class,
        super_class=super_class,
        access_flags=access_flags,
        interfaces=interfaces,
        fields=fields,
        methods=methods,
        major_version=major_version,
        minor_version=minor_version,
    )


# ===--- Metadata extraction ---=== #


def is_exported_constant(field: RawField) -> bool:
    flags = field.access_flags
    return (
        bool(flags & ACC_STATIC)
        and bool(flags & ACC_FINAL)
        and field.constant_value is not None
        and field.descriptor in CONSTANT_FIELD_DESCRIPTORS
    )


def is_native_bridge(method: RawMethod) -> bool:
    flags = method.access_flags
    return bool(flags & ACC_NATIVE) and not flags & ACC_SYNTHETIC


def extract_class_meta(raw: RawClassFile) -> ClassMetaInfo:
    constants = tuple(
        Constant(field.name, TypeDescriptor(field.descriptor), field.constant_value)
        for field in raw.fields
        if is_exported_constant(field)
    )
    methods = tuple(
        NativeMethod(
            method.name,
            TypeDescriptor(method.descriptor),
            bool(method.access_flags & ACC_STATIC),
        )
        for method in raw.methods
        if is_native_bridge(method)
    )
    super_class = (
        QualifiedName.from_binary_name(raw.super_class) if raw.super_class else None
    )
    return ClassMetaInfo(super_class=super_class, constants=constants, methods=methods)


def read_class_meta(data: bytes) -> ClassMetaInfo:
    return extract_class_meta(parse_class_file(data))


def super_class_of(data: bytes) -> QualifiedName | None:
    raw = parse_class_file(data)
    if raw.super_class is None:
        return None
    return QualifiedName.from_binary_name(raw.super_class)


# ===--- Search paths ---=== #

CLASS_SUFFIX = ".class"
JMOD_CLASS_PREFIX = "classes/"
ARCHIVE_SUFFIXES = (".jar", ".zip")
MODULE_SUFFIXES = (".jar", ".jmod")
MODULE_INFO = "module-info.class"
JAVA_BASE_MODULE = "java.base"


@dataclass(frozen=True)
class DirectorySearchPath:
    root: Path


@dataclass(frozen=True)
class ArchiveSearchPath:
    archive: Path
    prefix: str = ""


@dataclass(frozen=True)
class RuntimeSearchPath:
    """The Java runtime's own classes (rt.jar or jmods).

    With `java_home=None` the runtime is located from JAVA_HOME, or from
    the `java` executable on PATH, at lookup time.
    """

    java_home: Path | None = None


SearchProvider = DirectorySearchPath | ArchiveSearchPath | RuntimeSearchPath
SearchPath = tuple[SearchProvider, ...]

DEFAULT_SEARCH_PATH: SearchPath = (RuntimeSearchPath(),)


def archive_search_path(path: Path) -> ArchiveSearchPath:
    prefix = JMOD_CLASS_PREFIX if path.suffix.lower() == ".jmod" else ""
    return ArchiveSearchPath(path, prefix)


def _read_directory_entry(root: Path, name: QualifiedName) -> bytes | None:
    path = Path(root) / (name.binary_name + CLASS_SUFFIX)
    if not path.is_file():
        return None
    try:
        return path.read_bytes()
    except OSError as err:
        raise ClassFileError(f"Cannot read {path}: {err}") from err


# Corrupt, encrypted or unsupported-compression entries.
_ARCHIVE_READ_ERRORS = (
    OSError,
    EOFError,
    zipfile.BadZipFile,
    zlib.error,
    NotImplementedError,
    RuntimeError,
)


def _read_archive_entry(archive: Path, entry: str) -> bytes | None:
    archive = Path(archive)
    if not archive.is_file():
        return None
    try:
        with zipfile.ZipFile(archive) as zf:
            try:
                return zf.read(entry)
            except KeyError:
                return None
    except _ARCHIVE_READ_ERRORS as err:
        raise ClassFileError(f"Cannot read {entry} from {archive}: {err}") from err


def locate_java_home(environ: dict[str, str] | None = None) -> Path | None:
    env = os.environ if environ is None else environ
    java_home = env.get("JAVA_HOME")
    if java_home:
        return Path(java_home)
    java = shutil.which("java", path=env.get("PATH"))
    if java is None:
        return None
    return Path(java).resolve().parent.parent


def runtime_archives(
    java_home: Path, module: str | None = None
) -> tuple[ArchiveSearchPath, ...]:
    """Archives holding the runtime classes of `java_home`.

    JDK 8 layouts ship a single rt.jar. Later JDKs ship one jmod per
    module; the named module comes first, then java.base, then the rest
    alphabetically.
    """
    for legacy in (java_home / "jre" / "lib" / "rt.jar", java_home / "lib" / "rt.jar"):
        if legacy.is_file():
            return (ArchiveSearchPath(legacy),)

    jmods_dir = java_home / "jmods"
    if not jmods_dir.is_dir():
        return ()
    preferred = [m for m in (module, JAVA_BASE_MODULE) if m]

    def _order(path: Path) -> tuple[int, str]:
        stem = path.stem
        rank = preferred.index(stem) if stem in preferred else len(preferred)
        return rank, path.name

    return tuple(
        archive_search_path(path) for path in sorted(jmods_dir.glob("*.jmod"), key=_order)
    )


def _read_runtime_class(java_home: Path | None, name: QualifiedName) -> bytes | None:
    home = java_home if java_home is not None else locate_java_home()
    if home is None:
        return None
    for archive in runtime_archives(Path(home), name.module):
        data = resolve_class(archive, name)
        if data is not None:
            return data
    return None


def resolve_class(provider: SearchProvider, name: QualifiedName) -> bytes | None:
    """Bytes of `name` from one provider, or None when it has no such class."""
    match provider:
        case DirectorySearchPath(root=root):
            return _read_directory_entry(root, name)
        case ArchiveSearchPath(archive=archive, prefix=prefix):
            return _read_archive_entry(archive, prefix + name.binary_name + CLASS_SUFFIX)
        case RuntimeSearchPath(java_home=java_home):
            return _read_runtime_class(java_home, name)
    raise TypeError(f"Unknown search path provider: {provider!r}")


def search_class(
    search_path: Iterable[SearchProvider], name: QualifiedName
) -> bytes | None:
    for provider in search_path:
        data = resolve_class(provider, name)
        if data is not None:
            return data
    return None


def parse_class_path(text: str) -> SearchPath:
    """Providers for a `-cp` value.

    Directories are searched as class trees, `.jar`/`.zip` files as archives,
    and `dir/*` expands to every jar in `dir`. Missing entries are skipped.
    """
    providers: list[SearchProvider] = []
    for entry in text.split(os.pathsep):
        if not entry:
            continue
        if entry == "*" or entry.endswith(("/*", os.sep + "*")):
            directory = Path(entry[:-1] or ".")
            if directory.is_dir():
                providers.extend(
                    ArchiveSearchPath(path)
                    for path in sorted(directory.iterdir())
                    if path.is_file() and path.suffix.lower() == ".jar"
                )
            continue
        path = Path(entry)
        if path.is_dir():
            providers.append(DirectorySearchPath(path))
        elif path.is_file() and path.suffix.lower() in ARCHIVE_SUFFIXES + (".jmod",):
            providers.append(archive_search_path(path))
    return tuple(providers)


def _is_exploded_module(path: Path) -> bool:
    return path.is_dir() and (path / MODULE_INFO).is_file()


def parse_module_path(text: str) -> SearchPath:
    """Providers for a `--module-path` value.

    Each entry is a modular jar, a jmod, an exploded module directory, or a
    directory holding any of those.
    """
    providers: list[SearchProvider] = []
    for entry in text.split(os.pathsep):
        if not entry:
            continue
        path = Path(entry)
        if _is_exploded_module(path):
            providers.append(DirectorySearchPath(path))
        elif path.is_dir():
            for child in sorted(path.iterdir()):
                if _is_exploded_module(child):
                    providers.append(DirectorySearchPath(child))
                elif child.is_file() and child.suffix.lower() in MODULE_SUFFIXES:
                    providers.append(archive_search_path(child))
        elif path.is_file() and path.suffix.lower() in MODULE_SUFFIXES:
            providers.append(archive_search_path(path))
    return tuple(providers)


def build_search_path(config: GenerateConfig) -> SearchPath:
    providers: list[SearchProvider] = []
    if config.module_path:
        providers.extend(parse_module_path(config.module_path))
    providers.extend(parse_class_path(config.class_path))
    providers.append(RuntimeSearchPath())
    return tuple(providers)


# ===--- Native type mapping ---=== #

PRIMITIVE_NATIVE_TYPES = {
    "Z": "jboolean",
    "B": "jbyte",
    "C": "jchar",
    "S": "jshort",
    "I": "jint",
    "J": "jlong",
    "F": "jfloat",
    "D": "jdouble",
    "V": "void",
}

ARRAY_NATIVE_TYPES = {
    "[Z": "jbooleanArray",
    "[B": "jbyteArray",
    "[C": "jcharArray",
    "[S": "jshortArray",
    "[I": "jintArray",
    "[J": "jlongArray",
    "[F": "jfloatArray",
    "[D": "jdoubleArray",
}

REFERENCE_NATIVE_TYPES = {
    "Ljava/lang/Class;": "jclass",
    "Ljava/lang/String;": "jstring",
    "Ljava/lang/Throwable;": "jthrowable",
}

OBJECT_ARRAY_NATIVE_TYPE = "jobjectArray"
OBJECT_NATIVE_TYPE = "jobject"
THROWABLE_NATIVE_TYPE = "jthrowable"

THROWABLE_ROOTS = frozenset(
    {"java.lang.Throwable", "java.lang.Error", "java.lang.Exception"}
)
OBJECT_ROOT = "java.lang.Object"

TypeMapper = Callable[[TypeDescriptor], str]


def is_throwable(
    name: QualifiedName | None,
    search_path: Iterable[SearchProvider],
    diagnostics: Diagnostics = no_diagnostics,
) -> bool:
    """Whether `name` is java.lang.Throwable or one of its subclasses.

    Walks the superclass chain through `search_path`. A class that cannot
    be found or parsed, or a chain that revisits a class, ends the walk
    with False and a warning.
    """
    search_path = tuple(search_path)
    visited: set[str] = set()
    current = name
    while current is not None:
        if current.class_name in THROWABLE_ROOTS:
            return True
        if current.class_name == OBJECT_ROOT:
            return False
        if current.class_name in visited:
            diagnostics(f"warning: cyclic superclass chain at class {current}")
            return False
        visited.add(current.class_name)

        try:
            data = search_class(search_path, current)
            if data is None:
                diagnostics(f"warning: class {current} not found")
                return False
            current = super_class_of(data)
        except ClassFileError as err:
            diagnostics(f"warning: class {current} not found")
            report_exception(diagnostics, err)
            return False
    return False


def map_type_to_native(
    descriptor: TypeDescriptor | str,
    search_path: Iterable[SearchProvider] = DEFAULT_SEARCH_PATH,
    diagnostics: Diagnostics = no_diagnostics,
) -> str:
    """Native JNI type name for a field-type descriptor.

    Raises:
        UnsupportedDescriptorError: `descriptor` is a method descriptor or
            is malformed.
    """
    if isinstance(descriptor, str):
        descriptor = TypeDescriptor(descriptor)
    kind = descriptor.kind
    text = descriptor.text
    if kind == KIND_METHOD:
        raise UnsupportedDescriptorError(
            f"{text} is a method descriptor, expected a field type"
        )
    if kind == KIND_PRIMITIVE:
        return PRIMITIVE_NATIVE_TYPES[text]
    if kind == KIND_ARRAY:
        return ARRAY_NATIVE_TYPES.get(text, OBJECT_ARRAY_NATIVE_TYPE)
    if text in REFERENCE_NATIVE_TYPES:
        return REFERENCE_NATIVE_TYPES[text]
    if is_throwable(descriptor.class_name, search_path, diagnostics):
        return THROWABLE_NATIVE_TYPE
    return OBJECT_NATIVE_TYPE


def make_type_mapper(
    search_path: Iterable[SearchProvider] = DEFAULT_SEARCH_PATH,
    diagnostics: Diagnostics = no_diagnostics,
) -> TypeMapper:
    search_path = tuple(search_path)

    def _map(descriptor: TypeDescriptor) -> str:
        return map_type_to_native(descriptor, search_path, diagnostics)

    return _map


def map_method_to_native(
    descriptor: TypeDescriptor | str, map_type: TypeMapper
) -> tuple[tuple[str, ...], str]:
    """Map a method descriptor to (argument types, return type)."""
    if isinstance(descriptor, str):
        descriptor = TypeDescriptor(descriptor)
    if descriptor.kind != KIND_METHOD:
        raise UnsupportedDescriptorError(f"{descriptor.text} is not a method type")
    arguments = tuple(map_type(arg) for arg in descriptor.argument_types)
    return arguments, map_type(descriptor.return_type)


# ===--- Header emission ---=== #

HEADER_BANNER = "/* DO NOT EDIT THIS FILE - it is machine generated */"
JNI_INCLUDE = "#include <jni.h>"
JNI_ENV_PARAMETER = "JNIEnv *"
STATIC_RECEIVER_TYPE = "jclass"
INSTANCE_RECEIVER_TYPE = "jobject"


def header_file_name(name: QualifiedName) -> str:
    return f"{name.mangled_name}.h"


def format_constant_lines(class_mangled: str, constant: Constant) -> list[str]:
    macro = f"{class_mangled}_{constant.mangled_name}"
    return [
        f"#undef {macro}",
        f"#define {macro} {constant.value_to_string()}",
    ]


def format_method_lines(
    name: QualifiedName,
    method: NativeMethod,
    overloaded: bool,
    map_type: TypeMapper,
) -> list[str]:
    arguments, return_type = map_method_to_native(method.descriptor, map_type)
    receiver = STATIC_RECEIVER_TYPE if method.is_static else INSTANCE_RECEIVER_TYPE
    parameters = ", ".join((JNI_ENV_PARAMETER, receiver) + arguments)
    symbol = exported_symbol_name(
        name.class_name, method.name, method.descriptor, overloaded
    )
    return [
        "/*",
        f" * Class:      {name.mangled_name}",
        f" * Method:     {method.mangled_name}",
        f" * Signature:  {escape_signature(method.descriptor.text)}",
        " */",
        f"JNIEXPORT {return_type} JNICALL {symbol}",
        f"  ({parameters});",
        "",
    ]


def emit_header(name: QualifiedName, meta: ClassMetaInfo, map_type: TypeMapper) -> str:
    """Assemble the header text for one class.

    Pure given its inputs: the same metadata and type mapper always give
    the same text. Constants and methods appear in declaration order; a
    method whose plain name is shared with another native method gets the
    long, descriptor-suffixed symbol.

    Args:
        name: Class the header is for.
        meta: Metadata extracted from the class file.
        map_type: Descriptor to native type mapping, usually from
            make_type_mapper().

    Returns:
        Header text with a trailing newline.
    """
    mangled = name.mangled_name
    lines = [
        HEADER_BANNER,
        JNI_INCLUDE,
        f"/* Header for class {mangled} */",
        "",
        f"#ifndef _Included_{mangled}",
        f"#define _Included_{mangled}",
        "#ifdef __cplusplus",
        'extern "C" {',
        "#endif",
    ]
    for constant in meta.constants:
        lines.extend(format_constant_lines(mangled, constant))
    for method in meta.methods:
        lines.extend(
            format_method_lines(name, method, meta.is_overloaded(method), map_type)
        )
    lines.extend(["#ifdef __cplusplus", "}", "#endif", "#endif"])
    return "\n".join(lines) + "\n"


# ===--- Generation pipeline ---=== #

STATUS_WRITTEN = "written"
STATUS_NOT_FOUND = "not-found"
STATUS_PARSE_ERROR = "parse-error"
STATUS_WRITE_ERROR = "write-error"
STATUS_UNSUPPORTED_DESCRIPTOR = "unsupported-descriptor"


@dataclass(frozen=True)
class GenerationOutcome:
    """Result of generating one class's header.

    Attributes:
        class_name: Class the header was requested for.
        status: One of STATUS_WRITTEN, STATUS_NOT_FOUND, STATUS_PARSE_ERROR,
            STATUS_WRITE_ERROR, STATUS_UNSUPPORTED_DESCRIPTOR.
        path: Header path when written, otherwise None.
        line_count: Number of lines in the written header.
    """

    class_name: QualifiedName
    status: str
    path: Path | None = None
    line_count: int = 0

    @property
    def ok(self) -> bool:
        return self.status == STATUS_WRITTEN


def generate_header_text(
    name: QualifiedName,
    search_path: Iterable[SearchProvider] = DEFAULT_SEARCH_PATH,
    diagnostics: Diagnostics = no_diagnostics,
) -> str | None:
    """Header text for `name`, or None when no provider has the class.

    Raises:
        ClassFileError: The class bytes could not be read or parsed; the
            failure is reported to `diagnostics` before propagating.
    """
    search_path = tuple(search_path)
    try:
        data = search_class(search_path, name)
        if data is None:
            diagnostics(f"Not found class {name}")
            return None
        meta = read_class_meta(data)
    except ClassFileError as err:
        diagnostics(f"error: cannot open class file of {name}")
        report_exception(diagnostics, err)
        raise
    return emit_header(name, meta, make_type_mapper(search_path, diagnostics))


def generate(
    name: QualifiedName,
    output_dir: Path,
    search_path: Iterable[SearchProvider] = DEFAULT_SEARCH_PATH,
    diagnostics: Diagnostics = no_diagnostics,
) -> GenerationOutcome:
    """Write `<output_dir>/<mangled name>.h` for one class.

    Creates output_dir if absent. A missing class or a failed write is
    reported to `diagnostics` and returned as the outcome status; a failed
    write leaves no partial header behind.

    Raises:
        ClassFileError: Propagated from generate_header_text.
        UnsupportedDescriptorError: Propagated from generate_header_text.
    """
    output_dir = Path(output_dir)
    if output_dir.exists() and not output_dir.is_dir():
        diagnostics(f"error: {output_dir} is not a directory")
        return GenerationOutcome(name, STATUS_WRITE_ERROR)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        diagnostics(f"error: cannot create directory {output_dir}")
        report_exception(diagnostics, err)
        return GenerationOutcome(name, STATUS_WRITE_ERROR)

    text = generate_header_text(name, search_path, diagnostics)
    if text is None:
        return GenerationOutcome(name, STATUS_NOT_FOUND)

    header_path = output_dir / header_file_name(name)
    try:
        header_path.write_text(text, encoding="utf-8", newline="\n")
    except OSError as err:
        diagnostics(f"error: cannot write to {header_path}")
        report_exception(diagnostics, err)
        with contextlib.suppress(OSError):
            header_path.unlink(missing_ok=True)
        return GenerationOutcome(name, STATUS_WRITE_ERROR)

    return GenerationOutcome(
        name, STATUS_WRITTEN, path=header_path, line_count=text.count("\n")
    )


def run_generate(
    config: GenerateConfig, diagnostics: Diagnostics = stderr_diagnostics
) -> tuple[GenerationOutcome, ...]:
    """Generate headers for every class in config, continuing past failures.

    Parse errors and descriptors the JNI mapping cannot express fail only
    the class that carries them; both are recorded as outcomes.
    """
    search_path = build_search_path(config)
    print(f"Search path: {len(search_path)} entries")

    outcomes: list[GenerationOutcome] = []
    for name in config.class_names:
        try:
            outcome = generate(name, config.output_dir, search_path, diagnostics)
        except ClassFileError:
            outcome = GenerationOutcome(name, STATUS_PARSE_ERROR)
        except UnsupportedDescriptorError as err:
            diagnostics(f"error: unsupported descriptor in class {name}")
            report_exception(diagnostics, err)
            outcome = GenerationOutcome(name, STATUS_UNSUPPORTED_DESCRIPTOR)
        if outcome.ok:
            print(f"  Written: {outcome.path}")
        outcomes.append(outcome)

    print_generation_summary(build_generation_summary(config.output_dir, outcomes))
    return tuple(outcomes)


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class GenerationSummary:
    output_dir: str
    written: tuple[GenerationOutcome, ...]
    not_found: tuple[GenerationOutcome, ...]
    failed: tuple[GenerationOutcome, ...]

    @property
    def total(self) -> int:
        return len(self.written) + len(self.not_found) + len(self.failed)

    @property
    def total_lines(self) -> int:
        return sum(outcome.line_count for outcome in self.written)


def build_generation_summary(
    output_dir: Path, outcomes: Iterable[GenerationOutcome]
) -> GenerationSummary:
    outcomes = tuple(outcomes)
    return GenerationSummary(
        output_dir=str(output_dir),
        written=tuple(o for o in outcomes if o.status == STATUS_WRITTEN),
        not_found=tuple(o for o in outcomes if o.status == STATUS_NOT_FOUND),
        failed=tuple(
            o for o in outcomes if o.status not in (STATUS_WRITTEN, STATUS_NOT_FOUND)
        ),
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    """Render the console summary; ends with exactly one newline.

    Sections for missing or failed classes are omitted when empty.
    """
    lines: list[str] = []
    lines.append("JNI headers generated:")
    lines.append("")
    lines.append(f"  Output:     {summary.output_dir}")

    if summary.written:
        lines.append("")
        lines.append("  Headers written:")
        for outcome in summary.written:
            file_name = header_file_name(outcome.class_name)
            lines.append(f"    {file_name:<40} {outcome.line_count:>6,} lines")

    if summary.not_found:
        lines.append("")
        lines.append("  Not found:")
        for outcome in summary.not_found:
            lines.append(f"    {outcome.class_name}")

    if summary.failed:
        lines.append("")
        lines.append("  Failed:")
        for outcome in summary.failed:
            lines.append(f"    {outcome.class_name} ({outcome.status})")

    lines.append("")
    lines.append(
        f"  Total: {len(summary.written)} of {summary.total} classes, "
        f"{summary.total_lines:,} lines"
    )
    lines.append("")
    return "\n".join(lines)


def print_generation_summary(summary: GenerationSummary) -> None:
    print(format_generation_summary(summary), end="")


# ===--- Main generation ---=== #


def main(argv: list[str] | None = None) -> None:
    try:
        config = build_config(argv)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}")
        if err.suggestion:
            print(f"Hint: {err.suggestion}")
        raise SystemExit(1) from err

    try:
        outcomes = run_generate(config)
    except ValueError as err:
        print(f"Internal error: {err}")
        raise SystemExit(1) from err

    if not all(outcome.ok for outcome in outcomes):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
