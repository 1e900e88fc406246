"""Semantic checks on the recognised IDL annotations."""

from __future__ import annotations

from gatewaygen.core.errors import IDLError
from gatewaygen.idl.models import JS_TYPES, IDLModule, TypeKind, js_type_annotation


def check_duplicates(path: str, annotation_lists: list[tuple[str, list[tuple[str, str]], int]]) -> None:
    """Reject an annotation key repeated with different values on one target."""
    for target, pairs, _line in annotation_lists:
        seen: dict[str, str] = {}
        for key, value in pairs:
            if key in seen and seen[key] != value:
                raise IDLError.annotation_conflict(
                    path, target, key, f"set to both {seen[key]!r} and {value!r}"
                )
            seen[key] = value


def _check_js_type(path: str, target: str, annotations: dict[str, str], prefix: str, kind: TypeKind) -> None:
    prefixed = annotations.get(f"{prefix}.js.type")
    bare = annotations.get("js.type")
    if prefixed and bare and prefixed != bare:
        raise IDLError.annotation_conflict(
            path, target, "js.type", f"{prefix}.js.type={prefixed!r} disagrees with js.type={bare!r}"
        )
    js_type = js_type_annotation(annotations, prefix)
    if js_type is None:
        return
    if js_type not in JS_TYPES:
        raise IDLError.annotation_conflict(
            path, target, "js.type", f"must be one of {sorted(JS_TYPES)}, got {js_type!r}"
        )
    if kind is not TypeKind.I64:
        raise IDLError.annotation_conflict(path, target, "js.type", f"only applies to i64, not {kind.value}")


def validate_module(module: IDLModule, prefix: str) -> None:
    """Check js.type and boxed-request annotations of one linked module."""
    path = str(module.path)
    for td in module.typedefs.values():
        _check_js_type(path, f"typedef {td.name}", td.annotations, prefix, td.target.root().kind)
    for struct in module.structs.values():
        for f in struct.fields:
            _check_js_type(path, f"field {struct.name}.{f.name}", f.annotations, prefix, f.type.root().kind)

    boxed_key = f"{prefix}.http.req.def.boxed"
    for svc in module.service_list:
        for fn in svc.functions:
            boxed = fn.annotations.get(boxed_key)
            if boxed is None:
                continue
            target = f"function {svc.name}::{fn.name}"
            if boxed not in ("true", "false"):
                raise IDLError.annotation_conflict(path, target, boxed_key, f"must be true or false, got {boxed!r}")
            if boxed == "true" and (len(fn.arguments) != 1 or not fn.arguments[0].type.is_struct()):
                raise IDLError.annotation_conflict(
                    path, target, boxed_key, "a boxed request needs exactly one struct argument"
                )
