"""Mapping of IDL types to Go type expressions."""

from __future__ import annotations

from gatewaygen.codegen.casing import pascal_case
from gatewaygen.codegen.package import PackageHelper
from gatewaygen.core.errors import GenerationError
from gatewaygen.idl.models import TypeKind, TypeRef

_BASE_TYPES = {
    TypeKind.BOOL: "bool",
    TypeKind.I8: "int8",
    TypeKind.I16: "int16",
    TypeKind.I32: "int32",
    TypeKind.I64: "int64",
    TypeKind.U32: "uint32",
    TypeKind.U64: "uint64",
    TypeKind.FLOAT: "float32",
    TypeKind.DOUBLE: "float64",
    TypeKind.STRING: "string",
    TypeKind.BINARY: "[]byte",
}


def is_hashable(ref: TypeRef) -> bool:
    """Primitives, enums and typedefs of those can key a Go map."""
    return ref.is_primitive()


def go_type_name(name: str) -> str:
    """Exported Go name of a declared IDL type; nested proto names join with ``_``."""
    return "_".join(pascal_case(part) for part in name.split("."))


def go_custom_type(helper: PackageHelper, ref: TypeRef) -> str:
    if not ref.is_custom or not ref.file:
        raise GenerationError.generator_failed(f"go_custom_type called with native type {ref}")
    return f"{helper.type_package_name(ref.file)}.{go_type_name(ref.name)}"


def go_type(helper: PackageHelper, ref: TypeRef) -> str:
    """Go type of ``ref`` as it appears in a field or value position."""
    if ref.kind in _BASE_TYPES:
        return _BASE_TYPES[ref.kind]
    if ref.kind is TypeKind.MAP:
        assert ref.key is not None and ref.value is not None
        k = go_reference_type(helper, ref.key)
        v = go_reference_type(helper, ref.value)
        if not is_hashable(ref.key):
            return f"[]struct{{Key {k}; Value {v}}}"
        return f"map[{k}]{v}"
    if ref.kind is TypeKind.LIST:
        assert ref.value is not None
        return "[]" + go_reference_type(helper, ref.value)
    if ref.kind is TypeKind.SET:
        assert ref.value is not None
        v = go_reference_type(helper, ref.value)
        if not is_hashable(ref.value):
            return f"[]{v}"
        return f"map[{v}]struct{{}}"
    return go_custom_type(helper, ref)


def go_reference_type(helper: PackageHelper, ref: TypeRef) -> str:
    """Like ``go_type`` but structs are referenced through a pointer."""
    t = go_type(helper, ref)
    return "*" + t if ref.is_struct() else t
