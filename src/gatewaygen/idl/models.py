"""Parsed IDL data model shared by the Thrift and proto front ends."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

JS_TYPES = frozenset({"Long", "Date"})


class TypeKind(StrEnum):
    BOOL = "bool"
    I8 = "i8"
    I16 = "i16"
    I32 = "i32"
    I64 = "i64"
    U32 = "u32"
    U64 = "u64"
    FLOAT = "float"
    DOUBLE = "double"
    STRING = "string"
    BINARY = "binary"
    LIST = "list"
    SET = "set"
    MAP = "map"
    STRUCT = "struct"
    ENUM = "enum"
    TYPEDEF = "typedef"


PRIMITIVE_KINDS = frozenset(
    {
        TypeKind.BOOL,
        TypeKind.I8,
        TypeKind.I16,
        TypeKind.I32,
        TypeKind.I64,
        TypeKind.U32,
        TypeKind.U64,
        TypeKind.FLOAT,
        TypeKind.DOUBLE,
        TypeKind.STRING,
    }
)


@dataclass(frozen=True)
class TypeRef:
    """A resolved reference to an IDL type.

    Custom types (struct, enum, typedef) carry their declared ``name`` and the
    absolute ``file`` that declares them. Typedefs also carry ``target``.
    """

    kind: TypeKind
    name: str = ""
    file: str = ""
    key: TypeRef | None = None
    value: TypeRef | None = None
    target: TypeRef | None = None

    @property
    def is_custom(self) -> bool:
        return self.kind in (TypeKind.STRUCT, TypeKind.ENUM, TypeKind.TYPEDEF)

    def root(self) -> TypeRef:
        """Follow typedefs to the underlying type."""
        ref = self
        while ref.kind is TypeKind.TYPEDEF and ref.target is not None:
            ref = ref.target
        return ref

    def is_struct(self) -> bool:
        return self.root().kind is TypeKind.STRUCT

    def is_primitive(self) -> bool:
        root = self.root()
        return root.kind in PRIMITIVE_KINDS or root.kind is TypeKind.ENUM

    def referenced_files(self) -> set[str]:
        """Files declaring any custom type reachable from this reference."""
        files: set[str] = set()
        if self.is_custom and self.file:
            files.add(self.file)
        for child in (self.key, self.value):
            if child is not None:
                files |= child.referenced_files()
        return files

    def __str__(self) -> str:
        if self.kind is TypeKind.MAP:
            return f"map<{self.key},{self.value}>"
        if self.kind in (TypeKind.LIST, TypeKind.SET):
            return f"{self.kind.value}<{self.value}>"
        return self.name or self.kind.value


@dataclass
class Field:
    name: str
    type: TypeRef
    id: int | None = None
    required: bool | None = None
    default: str | None = None
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class StructDecl:
    name: str
    kind: str  # struct, union, exception, message
    fields: list[Field]
    file: str
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class EnumDecl:
    name: str
    items: list[tuple[str, int]]
    file: str
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class TypedefDecl:
    name: str
    target: TypeRef
    file: str
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class Function:
    name: str
    arguments: list[Field]
    return_type: TypeRef | None  # None for void
    exceptions: list[Field] = field(default_factory=list)
    oneway: bool = False
    annotations: dict[str, str] = field(default_factory=dict)
    line: int = 0


@dataclass
class Service:
    name: str
    functions: list[Function]
    file: str
    extends: str | None = None
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class JSTypedField:
    """An i64 field (or typedef) whose JSON form is controlled by ``js.type``."""

    owner: str  # struct or typedef name
    field_name: str | None
    js_type: str  # "Long" or "Date"


@dataclass
class IDLModule:
    """One parsed IDL file and the modules it includes."""

    path: Path
    syntax: str  # "thrift" or "proto"
    package: str = ""
    package_path: str = ""  # dotted proto package, empty for thrift
    includes: dict[str, IDLModule] = field(default_factory=dict)
    namespaces: dict[str, str] = field(default_factory=dict)
    structs: dict[str, StructDecl] = field(default_factory=dict)
    enums: dict[str, EnumDecl] = field(default_factory=dict)
    typedefs: dict[str, TypedefDecl] = field(default_factory=dict)
    constants: dict[str, str] = field(default_factory=dict)
    service_list: list[Service] = field(default_factory=list)
    options: dict[str, str] = field(default_factory=dict)
    content_hash: str = ""

    @property
    def services(self) -> list[Service]:
        return list(self.service_list)

    def service(self, name: str) -> Service | None:
        for svc in self.service_list:
            if svc.name == name:
                return svc
        return None

    def functions(self, service: str | Service) -> list[Function]:
        """Functions of ``service`` including those inherited through ``extends``."""
        svc = self.service(service) if isinstance(service, str) else service
        if svc is None:
            return []
        inherited: list[Function] = []
        if svc.extends:
            owner, name = self._lookup_service(svc.extends)
            if owner is not None and name is not None:
                inherited = owner.functions(name)
        return inherited + list(svc.functions)

    def _lookup_service(self, ref: str) -> tuple[IDLModule | None, str | None]:
        if "." in ref:
            alias, _, name = ref.rpartition(".")
            included = self.includes.get(alias)
            return (included, name) if included else (None, None)
        return self, ref

    def referenced_packages(self, function: Function) -> set[str]:
        """Files whose types appear in ``function``'s signature, as absolute paths."""
        files: set[str] = set()
        for arg in function.arguments:
            files |= arg.type.referenced_files()
        if function.return_type is not None:
            files |= function.return_type.referenced_files()
        for exc in function.exceptions:
            files |= exc.type.referenced_files()
        return files

    def is_unwrapped(self, function: Function, annotation_prefix: str) -> bool:
        """True when the single struct argument is unwrapped at the wire boundary."""
        return function.annotations.get(f"{annotation_prefix}.http.req.def.boxed") == "true"

    def js_typed_i64_fields(self, annotation_prefix: str) -> list[JSTypedField]:
        """i64 typedefs and struct fields annotated ``js.type`` = Long or Date."""
        found: list[JSTypedField] = []
        for td in sorted(self.typedefs.values(), key=lambda t: t.name):
            js_type = js_type_annotation(td.annotations, annotation_prefix)
            if js_type and td.target.root().kind is TypeKind.I64:
                found.append(JSTypedField(td.name, None, js_type))
        for struct in sorted(self.structs.values(), key=lambda s: s.name):
            for f in struct.fields:
                if f.type.root().kind is not TypeKind.I64:
                    continue
                js_type = js_type_annotation(f.annotations, annotation_prefix)
                if js_type is None and f.type.kind is TypeKind.TYPEDEF:
                    js_type = self._typedef_js_type(f.type, annotation_prefix)
                if js_type:
                    found.append(JSTypedField(struct.name, f.name, js_type))
        return found

    def _typedef_js_type(self, ref: TypeRef, annotation_prefix: str) -> str | None:
        owner = self._module_for_file(ref.file)
        decl = owner.typedefs.get(ref.name) if owner else None
        return js_type_annotation(decl.annotations, annotation_prefix) if decl else None

    def _module_for_file(self, file: str) -> IDLModule | None:
        if str(self.path) == file:
            return self
        for included in self.includes.values():
            if (found := included._module_for_file(file)) is not None:
                return found
        return None

    def transitive_files(self) -> list[Path]:
        """This file and every file it includes, transitively, sorted by path."""
        seen: dict[str, Path] = {}
        stack: list[IDLModule] = [self]
        while stack:
            module = stack.pop()
            key = str(module.path)
            if key in seen:
                continue
            seen[key] = module.path
            stack.extend(module.includes.values())
        return [seen[k] for k in sorted(seen)]


def js_type_annotation(annotations: dict[str, str], annotation_prefix: str) -> str | None:
    return annotations.get(f"{annotation_prefix}.js.type") or annotations.get("js.type")
