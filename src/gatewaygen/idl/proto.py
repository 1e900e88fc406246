"""Protocol Buffers (proto2/proto3) front end.

Same two-phase shape as the Thrift front end: ``parse_proto`` runs the
proto-schema-parser grammar and collects imports and declarations,
``link_proto`` resolves type names once the imported files are loaded.
Options on fields and rpcs are surfaced as annotations, with the
parentheses of custom options stripped.

The parser does not track source positions, so errors name the
declaration instead of a line.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from proto_schema_parser import ast
from proto_schema_parser.parser import Parser

from gatewaygen.core.errors import IDLError
from gatewaygen.idl.models import (
    EnumDecl,
    Field,
    Function,
    IDLModule,
    Service,
    StructDecl,
    TypeKind,
    TypeRef,
)

SCALAR_TYPES = {
    "double": TypeKind.DOUBLE,
    "float": TypeKind.FLOAT,
    "int32": TypeKind.I32,
    "sint32": TypeKind.I32,
    "sfixed32": TypeKind.I32,
    "int64": TypeKind.I64,
    "sint64": TypeKind.I64,
    "sfixed64": TypeKind.I64,
    "uint32": TypeKind.U32,
    "fixed32": TypeKind.U32,
    "uint64": TypeKind.U64,
    "fixed64": TypeKind.U64,
    "bool": TypeKind.BOOL,
    "string": TypeKind.STRING,
    "bytes": TypeKind.BINARY,
}


@dataclass
class RawProtoField:
    name: str
    type_name: str
    number: int
    label: str  # "", "repeated", "optional", "required"
    key_type: str | None
    options: dict[str, str]


@dataclass
class RawRpc:
    name: str
    request: str
    response: str
    client_streaming: bool
    server_streaming: bool
    options: dict[str, str]


@dataclass
class ProtoDocument:
    path: Path
    content_hash: str
    syntax: str = "proto2"
    package: str = ""
    imports: list[str] = field(default_factory=list)
    options: dict[str, str] = field(default_factory=dict)
    messages: dict[str, list[RawProtoField]] = field(default_factory=dict)
    enums: dict[str, EnumDecl] = field(default_factory=dict)
    services: list[tuple[str, list[RawRpc], dict[str, str]]] = field(default_factory=list)
    annotation_lists: list[tuple[str, list[tuple[str, str]], int]] = field(default_factory=list)


def _unquote(text: str) -> str:
    if len(text) >= 2 and text[0] in "\"'" and text[-1] == text[0]:
        return text[1:-1]
    return text


def _option_name(name: str) -> str:
    return name.replace("(", "").replace(")", "").lstrip(".")


def _option_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return _unquote(value)
    if isinstance(value, int | float):
        return str(value)
    # identifiers carry a name; message literals collapse to an empty literal
    return str(getattr(value, "name", "{}"))


class _ProtoReader:
    def __init__(self, path: Path, text: str) -> None:
        self.path = path
        self.text = text
        self.doc = ProtoDocument(path=path, content_hash=hashlib.sha256(text.encode()).hexdigest())

    def read(self) -> ProtoDocument:
        try:
            parsed = Parser().parse(self.text)
        except Exception as e:  # noqa: BLE001
            raise IDLError.parse_error(str(self.path), 0, str(e) or type(e).__name__) from e
        doc = self.doc
        if parsed.syntax:
            doc.syntax = _unquote(parsed.syntax)
        for element in parsed.file_elements:
            if isinstance(element, ast.Package):
                doc.package = element.name
            elif isinstance(element, ast.Import):
                doc.imports.append(_unquote(element.name))
            elif isinstance(element, ast.Option):
                doc.options[_option_name(element.name)] = _option_value(element.value)
            elif isinstance(element, ast.Message):
                self._message(element, "")
            elif isinstance(element, ast.Enum):
                self._enum(element, "")
            elif isinstance(element, ast.Service):
                self._service(element)
        return doc

    def _declare(self, name: str) -> None:
        if name in self.doc.messages or name in self.doc.enums:
            raise IDLError.parse_error(str(self.path), 0, f"type {name!r} is declared twice")

    def _options(self, elements: list[Any], target: str) -> dict[str, str]:
        pairs = [
            (_option_name(element.name), _option_value(element.value))
            for element in elements
            if isinstance(element, ast.Option)
        ]
        if pairs:
            self.doc.annotation_lists.append((target, pairs, 0))
        return dict(pairs)

    def _message(self, message: ast.Message, scope: str) -> None:
        name = f"{scope}{message.name}"
        self._declare(name)
        fields: list[RawProtoField] = []
        self.doc.messages[name] = fields
        for element in message.elements:
            if isinstance(element, ast.Field):
                fields.append(self._field(element, name))
            elif isinstance(element, ast.MapField):
                fields.append(
                    RawProtoField(
                        element.name,
                        element.value_type,
                        element.number,
                        "",
                        element.key_type,
                        self._options(element.options, f"field {name}.{element.name}"),
                    )
                )
            elif isinstance(element, ast.OneOf):
                fields.extend(self._field(f, name) for f in element.elements if isinstance(f, ast.Field))
            elif isinstance(element, ast.Message):
                self._message(element, f"{name}.")
            elif isinstance(element, ast.Enum):
                self._enum(element, f"{name}.")

    def _field(self, element: ast.Field, owner: str) -> RawProtoField:
        label = element.cardinality.value.lower() if element.cardinality else ""
        options = self._options(element.options, f"field {owner}.{element.name}")
        return RawProtoField(element.name, element.type, element.number, label, None, options)

    def _enum(self, enum: ast.Enum, scope: str) -> None:
        name = f"{scope}{enum.name}"
        self._declare(name)
        items: list[tuple[str, int]] = []
        for element in enum.elements:
            if isinstance(element, ast.EnumValue):
                self._options(element.options, f"enum value {name}.{element.name}")
                items.append((element.name, element.number))
        self.doc.enums[name] = EnumDecl(name, items, str(self.path))

    def _service(self, service: ast.Service) -> None:
        rpcs = [
            RawRpc(
                method.name,
                method.input_type.type,
                method.output_type.type,
                method.input_type.stream,
                method.output_type.stream,
                self._options(method.elements, f"rpc {service.name}.{method.name}"),
            )
            for method in service.elements
            if isinstance(method, ast.Method)
        ]
        options = {
            _option_name(element.name): _option_value(element.value)
            for element in service.elements
            if isinstance(element, ast.Option)
        }
        self.doc.services.append((service.name, rpcs, options))


def parse_proto(path: Path, text: str | None = None) -> ProtoDocument:
    """Parse one proto file without following imports."""
    if text is None:
        text = path.read_text(encoding="utf-8")
    return _ProtoReader(path, text).read()


def go_package_name(doc_package: str, options: dict[str, str], path: Path) -> str:
    """Go package name: ``go_package`` (after any ``;``), else the proto package."""
    go_package = options.get("go_package", "")
    if go_package:
        return go_package.rpartition(";")[2] if ";" in go_package else go_package.rpartition("/")[2]
    if doc_package:
        return doc_package.rpartition(".")[2]
    return path.stem


class _ProtoLinker:
    def __init__(self, doc: ProtoDocument, imports: dict[str, IDLModule]) -> None:
        self.doc = doc
        self.imports = imports
        self.file = str(doc.path)

    def _lookup_in(self, module_package: str, names: dict[str, object], name: str, scope: str) -> str | None:
        candidates = []
        if module_package and name.startswith(module_package + "."):
            candidates.append(name[len(module_package) + 1 :])
        parts = scope.split(".") if scope else []
        while parts:
            candidates.append(".".join(parts) + "." + name)
            parts.pop()
        candidates.append(name)
        for candidate in candidates:
            if candidate in names:
                return candidate
        return None

    def resolve(self, type_name: str, scope: str, where: str) -> TypeRef:
        if type_name in SCALAR_TYPES:
            return TypeRef(SCALAR_TYPES[type_name])
        name = type_name.lstrip(".")
        doc = self.doc
        local = self._lookup_in(doc.package, {**doc.messages, **doc.enums}, name, scope)
        if local is not None:
            kind = TypeKind.STRUCT if local in doc.messages else TypeKind.ENUM
            return TypeRef(kind, name=local, file=self.file)
        for module in self.imports.values():
            found = self._lookup_in(module.package_path, {**module.structs, **module.enums}, name, "")
            if found is not None:
                kind = TypeKind.STRUCT if found in module.structs else TypeKind.ENUM
                return TypeRef(kind, name=found, file=str(module.path))
        raise IDLError.parse_error(self.file, 0, f"unknown type {type_name!r} in {where}")

    def field(self, raw: RawProtoField, scope: str) -> Field:
        where = f"field {scope}.{raw.name}"
        value = self.resolve(raw.type_name, scope, where)
        if raw.key_type is not None:
            ref = TypeRef(TypeKind.MAP, key=self.resolve(raw.key_type, scope, where), value=value)
        elif raw.label == "repeated":
            ref = TypeRef(TypeKind.LIST, value=value)
        else:
            ref = value
        required = {"required": True, "optional": False}.get(raw.label)
        return Field(raw.name, ref, raw.number, required, None, dict(raw.options))

    def link(self) -> IDLModule:
        doc = self.doc
        module = IDLModule(
            path=doc.path,
            syntax="proto",
            package=go_package_name(doc.package, doc.options, doc.path),
            package_path=doc.package,
            includes=dict(self.imports),
            enums=dict(doc.enums),
            options=dict(doc.options),
            content_hash=doc.content_hash,
        )
        for name, raw_fields in doc.messages.items():
            fields = [self.field(f, name) for f in raw_fields]
            module.structs[name] = StructDecl(name, "message", fields, self.file)
        for name, rpcs, options in doc.services:
            functions = [
                Function(
                    name=rpc.name,
                    arguments=[Field("request", self.resolve(rpc.request, "", f"rpc {name}.{rpc.name}"), 1, True)],
                    return_type=self.resolve(rpc.response, "", f"rpc {name}.{rpc.name}"),
                    annotations={
                        **rpc.options,
                        **({"grpc.client_streaming": "true"} if rpc.client_streaming else {}),
                        **({"grpc.server_streaming": "true"} if rpc.server_streaming else {}),
                    },
                )
                for rpc in rpcs
            ]
            module.service_list.append(Service(name, functions, self.file, annotations=dict(options)))
        return module


def link_proto(doc: ProtoDocument, imports: dict[str, IDLModule]) -> IDLModule:
    """Resolve a parsed proto document against its loaded imports."""
    return _ProtoLinker(doc, imports).link()
