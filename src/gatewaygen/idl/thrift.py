"""Thrift IDL front end.

Source text is parsed with the tree-sitter Thrift grammar. ``parse_thrift``
walks the syntax tree into a ``ThriftDocument`` whose type references are
still unresolved names, so the loader can discover includes first.
``link_thrift`` then resolves every name against the document and its
loaded includes and produces an ``IDLModule``.

The walk dispatches on the leading keyword of each definition and reads
fields and functions by child order.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from tree_sitter import Node
from tree_sitter_language_pack import get_parser

from gatewaygen.core.errors import IDLError
from gatewaygen.idl.models import (
    EnumDecl,
    Field,
    Function,
    IDLModule,
    Service,
    StructDecl,
    TypedefDecl,
    TypeKind,
    TypeRef,
)

BASE_TYPES = {
    "bool": TypeKind.BOOL,
    "byte": TypeKind.I8,
    "i8": TypeKind.I8,
    "i16": TypeKind.I16,
    "i32": TypeKind.I32,
    "i64": TypeKind.I64,
    "double": TypeKind.DOUBLE,
    "string": TypeKind.STRING,
    "slist": TypeKind.STRING,
    "binary": TypeKind.BINARY,
}

_FIELD_ID_RE = re.compile(r"[+-]?(?:0[xX][0-9a-fA-F]+|\d+)\s*:?")
_SEPARATORS = frozenset({",", ";"})
_FUNCTION_MODIFIERS = frozenset({"async", "idempotent", "readonly"})


@dataclass(frozen=True)
class TypeExpr:
    """An unresolved type as written in the source."""

    name: str
    args: tuple[TypeExpr, ...] = ()
    line: int = 0


@dataclass
class RawField:
    name: str
    type: TypeExpr
    id: int | None
    required: bool | None
    default: str | None
    annotations: dict[str, str]
    type_annotations: dict[str, str]


@dataclass
class RawFunction:
    name: str
    arguments: list[RawField]
    return_type: TypeExpr | None
    exceptions: list[RawField]
    oneway: bool
    annotations: dict[str, str]
    line: int


@dataclass
class ThriftDocument:
    path: Path
    content_hash: str
    includes: list[tuple[str, str, int]] = field(default_factory=list)  # (alias, path, line)
    namespaces: dict[str, str] = field(default_factory=dict)
    structs: dict[str, tuple[str, list[RawField], dict[str, str]]] = field(default_factory=dict)
    enums: dict[str, EnumDecl] = field(default_factory=dict)
    typedefs: dict[str, tuple[TypeExpr, dict[str, str]]] = field(default_factory=dict)
    constants: dict[str, str] = field(default_factory=dict)
    services: list[tuple[str, str | None, list[RawFunction], dict[str, str]]] = field(default_factory=list)
    annotation_lists: list[tuple[str, list[tuple[str, str]], int]] = field(default_factory=list)


# Syntax tree helpers


def _text(node: Node) -> str:
    return node.text.decode("utf-8") if node.text else ""


def _line(node: Node) -> int:
    return node.start_point[0] + 1


def _is_comment(node: Node) -> bool:
    return "comment" in node.type


def _is_annotation(node: Node) -> bool:
    return node.is_named and "annotation" in node.type


def _is_string(text: str) -> bool:
    return len(text) >= 2 and text[0] in "\"'" and text[-1] == text[0]


def _unquote(text: str) -> str:
    return text[1:-1] if _is_string(text) else text


def _children(node: Node) -> list[Node]:
    return [c for c in node.children if not _is_comment(c)]


def _leading(node: Node) -> str:
    kids = _children(node)
    return _text(kids[0]) if kids else ""


def _unwrap(node: Node) -> Node:
    """Descend through wrappers whose only non-annotation child is a named node."""
    while True:
        rest = [c for c in _children(node) if not _is_annotation(c)]
        if len(rest) != 1 or not rest[0].is_named:
            return node
        node = rest[0]


def _flatten(nodes: Iterable[Node]) -> Iterator[Node]:
    for node in nodes:
        if _is_comment(node):
            continue
        if node.is_named and node.named_child_count and not _is_annotation(node) and not _is_string(_text(node)):
            yield from _flatten(node.children)
        else:
            yield node


def _has_string(node: Node) -> bool:
    return any(_is_string(_text(c)) or (c.child_count and _has_string(c)) for c in node.children)


def _annotation_pairs(node: Node, pairs: list[tuple[str, str]]) -> None:
    for child in _children(node):
        text = _text(child)
        if _is_string(text):
            if pairs:
                pairs[-1] = (pairs[-1][0], _unquote(text))
        elif child.is_named:
            if _has_string(child):
                _annotation_pairs(child, pairs)
            else:
                pairs.append((text, ""))


def _first_error(node: Node) -> Node:
    for child in node.children:
        if child.type == "ERROR" or child.is_missing:
            return child
        if child.has_error:
            return _first_error(child)
    return node


def _param_nodes(node: Node) -> list[Node]:
    kids = _children(node)
    if any(k.type == "(" for k in kids):
        return [k for k in kids if k.is_named and not _is_annotation(k)]
    for kid in kids:
        if kid.is_named and not _is_annotation(kid) and _leading(kid) == "(":
            return _param_nodes(kid)
    return []


def _const_value(node: Node) -> str:
    node = _unwrap(node)
    text = _text(node)
    if _is_string(text):
        return _unquote(text)
    kids = _children(node)
    if not kids or kids[0].type not in ("[", "{"):
        if any(k.type == ":" for k in kids):
            return ":".join(_const_value(k) for k in kids if k.type != ":")
        return text
    opening = kids[0].type
    closing = "]" if opening == "[" else "}"
    parts: list[str] = []
    joining = False
    for kid in kids[1:]:
        if kid.type == closing or kid.type in _SEPARATORS:
            continue
        if kid.type == ":":
            joining = True
            continue
        value = _const_value(kid)
        if joining and parts:
            parts[-1] = f"{parts[-1]}:{value}"
            joining = False
        else:
            parts.append(value)
    return opening + ",".join(parts) + closing


def _type_expr(node: Node) -> TypeExpr:
    node = _unwrap(node)
    kids = [c for c in _children(node) if not _is_annotation(c)]
    if any(k.type == "<" for k in kids):
        args = tuple(_type_expr(k) for k in kids[1:] if k.is_named)
        return TypeExpr(_text(kids[0]), args, _line(node))
    name = "".join(_text(k) for k in kids) if kids else _text(node)
    return TypeExpr(name, (), _line(node))


def parse_int(text: str) -> int:
    text = text.strip()
    sign = -1 if text.startswith("-") else 1
    digits = text.lstrip("+-")
    return sign * int(digits, 16 if digits[:2].lower() == "0x" else 10)


class _ThriftReader:
    def __init__(self, path: Path, text: str) -> None:
        self.path = path
        self.text = text
        self.doc = ThriftDocument(path=path, content_hash=hashlib.sha256(text.encode()).hexdigest())

    def error(self, node: Node, reason: str) -> IDLError:
        return IDLError.parse_error(str(self.path), _line(node), reason)

    def read(self) -> ThriftDocument:
        tree = get_parser("thrift").parse(self.text.encode("utf-8"))
        root = tree.root_node
        if root.has_error:
            bad = _first_error(root)
            if bad.is_missing:
                raise self.error(bad, f"missing {bad.type!r}")
            snippet = (_text(bad).splitlines() or [""])[0][:40]
            raise self.error(bad, f"syntax error near {snippet!r}")
        for node in _children(root):
            while (kids := _children(node)) and len(kids) == 1 and kids[0].is_named:
                node = kids[0]
            self._definition(node)
        return self.doc

    def _definition(self, node: Node) -> None:
        kids = _children(node)
        keyword = _text(kids[0]) if kids else ""
        handler = getattr(self, f"_read_{keyword}", None) if keyword.isidentifier() else None
        if handler is None:
            raise self.error(node, f"unknown definition {keyword!r}")
        handler(node, kids[1:])

    def _declare(self, name: str, line: int) -> None:
        doc = self.doc
        if name in doc.structs or name in doc.enums or name in doc.typedefs:
            raise IDLError.parse_error(str(doc.path), line, f"type {name!r} is declared twice")

    def _annotations(self, nodes: Iterable[Node], target: str) -> dict[str, str]:
        annotations: dict[str, str] = {}
        for node in nodes:
            if not _is_annotation(node):
                continue
            pairs: list[tuple[str, str]] = []
            _annotation_pairs(node, pairs)
            self.doc.annotation_lists.append((target, pairs, _line(node)))
            annotations.update(pairs)
        return annotations

    def _body(self, node: Node, kids: list[Node]) -> tuple[list[Node], list[Node], list[Node]]:
        """Split ``kids`` into the header, the members between braces, and the trailer."""
        for i, kid in enumerate(kids):
            if kid.type == "{":
                close = max((j for j in range(i + 1, len(kids)) if kids[j].type == "}"), default=len(kids))
                return kids[:i], kids[i + 1 : close], kids[close + 1 :]
        for i, kid in enumerate(kids):
            if kid.is_named and any(c.type == "{" for c in kid.children):
                _, members, _ = self._body(kid, _children(kid))
                return kids[:i], members, kids[i + 1 :]
        raise self.error(node, "expected '{'")

    def _name(self, node: Node, header: list[Node]) -> str:
        for kid in header:
            if kid.is_named and not _is_annotation(kid):
                return _text(kid)
        raise self.error(node, "missing name")

    # Headers

    def _read_include(self, node: Node, rest: list[Node]) -> None:
        for kid in rest:
            if _is_string(_text(kid)):
                target = _unquote(_text(kid))
                self.doc.includes.append((Path(target).name.removesuffix(".thrift"), target, _line(node)))
                return
        raise self.error(node, "expected include path")

    def _read_cpp_include(self, node: Node, rest: list[Node]) -> None:
        pass

    def _read_namespace(self, node: Node, rest: list[Node]) -> None:
        values = [k for k in rest if not _is_annotation(k) and k.type not in _SEPARATORS]
        if len(values) < 2:
            raise self.error(node, "expected namespace scope and name")
        self.doc.namespaces[_text(values[0])] = _unquote(_text(values[1]))
        self._annotations(rest, "namespace")

    # Definitions

    def _read_const(self, node: Node, rest: list[Node]) -> None:
        raw = self._field(node, rest, "const {}")
        if raw.default is None:
            raise self.error(node, f"constant {raw.name!r} has no value")
        self.doc.constants[raw.name] = raw.default

    def _read_typedef(self, node: Node, rest: list[Node]) -> None:
        raw = self._field(node, rest, "typedef {}")
        self._declare(raw.name, _line(node))
        self.doc.typedefs[raw.name] = (raw.type, {**raw.type_annotations, **raw.annotations})

    def _read_enum(self, node: Node, rest: list[Node]) -> None:
        header, members, trailer = self._body(node, rest)
        name = self._name(node, header)
        self._declare(name, _line(node))
        items: list[tuple[str, int]] = []
        next_value = 0
        tokens = _flatten(members)
        for tok in tokens:
            if _is_annotation(tok):
                if items:
                    self._annotations([tok], f"enum item {name}.{items[-1][0]}")
            elif tok.type == "=":
                value = ""
                for part in tokens:
                    value += _text(part)
                    if part.is_named:
                        break
                if not items or not value:
                    raise self.error(tok, f"dangling '=' in enum {name}")
                explicit = parse_int(value)
                items[-1] = (items[-1][0], explicit)
                next_value = explicit + 1
            elif tok.is_named:
                items.append((_text(tok), next_value))
                next_value += 1
        annotations = self._annotations(trailer, f"enum {name}")
        self.doc.enums[name] = EnumDecl(name, items, str(self.path), annotations)

    def _read_senum(self, node: Node, rest: list[Node]) -> None:
        raise self.error(node, "senum is not supported")

    def _read_struct(self, node: Node, rest: list[Node], kind: str = "struct") -> None:
        header, members, trailer = self._body(node, rest)
        name = self._name(node, header)
        self._declare(name, _line(node))
        owner = f"{kind} {name}"
        fields = [self._field(m, _children(m), f"field {owner}.{{}}") for m in members if m.is_named]
        annotations = self._annotations(trailer, owner)
        self.doc.structs[name] = (kind, fields, annotations)

    def _read_union(self, node: Node, rest: list[Node]) -> None:
        self._read_struct(node, rest, "union")

    def _read_exception(self, node: Node, rest: list[Node]) -> None:
        self._read_struct(node, rest, "exception")

    def _read_service(self, node: Node, rest: list[Node]) -> None:
        header, members, trailer = self._body(node, rest)
        tokens = [t for t in _flatten(header) if not _is_annotation(t) and t.type not in _SEPARATORS]
        if not tokens:
            raise self.error(node, "missing service name")
        name = _text(tokens[0])
        extends = None
        texts = [_text(t) for t in tokens]
        if "extends" in texts:
            extends = "".join(texts[texts.index("extends") + 1 :]) or None
        functions = [self._function(m, name) for m in members if m.is_named]
        annotations = self._annotations(trailer, f"service {name}")
        self.doc.services.append((name, extends, functions, annotations))

    def _function(self, node: Node, service: str) -> RawFunction:
        kids = _children(node)
        oneway = False
        has_return = False
        return_type: TypeExpr | None = None
        name = ""
        arguments: list[RawField] = []
        exceptions: list[RawField] = []
        annotation_nodes: list[Node] = []
        in_throws = False
        i = 0
        while i < len(kids):
            child = kids[i]
            text = _text(child)
            if child.type in _SEPARATORS:
                pass
            elif _is_annotation(child):
                if name:
                    annotation_nodes.append(child)
                else:
                    self._annotations([child], f"return type of {service}")
            elif text == "throws":
                in_throws = True
            elif _leading(child) == "throws":
                exceptions = self._params(_param_nodes(child), f"{service}::{name} throws")
            elif child.type == "(" or (child.is_named and _leading(child) == "("):
                if child.type == "(":
                    close = next((j for j in range(i + 1, len(kids)) if kids[j].type == ")"), len(kids))
                    params = [k for k in kids[i + 1 : close] if k.is_named and not _is_annotation(k)]
                    i = close
                else:
                    params = _param_nodes(child)
                if in_throws:
                    exceptions = self._params(params, f"{service}::{name} throws")
                else:
                    arguments = self._params(params, f"{service}::{name}")
            elif not has_return and text == "oneway":
                oneway = True
            elif not has_return and text in _FUNCTION_MODIFIERS:
                pass
            elif not has_return:
                has_return = True
                if text != "void":
                    return_type = _type_expr(child)
            elif not name:
                name = text
            i += 1
        if not name:
            raise self.error(node, f"missing function name in service {service}")
        annotations = self._annotations(annotation_nodes, f"function {service}::{name}")
        return RawFunction(name, arguments, return_type, exceptions, oneway, annotations, _line(node))

    def _params(self, nodes: list[Node], owner: str) -> list[RawField]:
        return [self._field(p, _children(p), f"field {owner}.{{}}") for p in nodes]

    def _field(self, node: Node, kids: list[Node], label: str) -> RawField:
        """Read ``[id:] [required|optional] type name [= value] [(annotations)]``."""
        field_id: int | None = None
        required: bool | None = None
        default: str | None = None
        type_node: Node | None = None
        name: str | None = None
        type_annotations: list[Node] = []
        annotations: list[Node] = []
        parts = iter(kids)
        for child in parts:
            text = _text(child)
            if child.type in _SEPARATORS or child.type == ":":
                continue
            if _is_annotation(child):
                (type_annotations if name is None else annotations).append(child)
            elif child.type == "=":
                value = next(parts, None)
                if value is None:
                    raise self.error(child, "expected value after '='")
                default = _const_value(value)
            elif type_node is None and field_id is None and required is None and _FIELD_ID_RE.fullmatch(text):
                field_id = parse_int(text.rstrip(":"))
            elif type_node is None and text in ("required", "optional"):
                required = text == "required"
            elif type_node is None:
                type_node = child
                type_annotations.extend(c for c in _children(child) if _is_annotation(c))
            elif name is None:
                name = text
        if type_node is None or name is None:
            raise self.error(node, f"incomplete declaration {label.format(name or '?')}")
        target = label.format(name)
        return RawField(
            name,
            _type_expr(type_node),
            field_id,
            required,
            default,
            self._annotations(annotations, target),
            self._annotations(type_annotations, f"type of {target}"),
        )


def parse_thrift(path: Path, text: str | None = None) -> ThriftDocument:
    """Parse one Thrift file without following includes."""
    if text is None:
        text = path.read_text(encoding="utf-8")
    return _ThriftReader(path, text).read()


class _Linker:
    def __init__(self, doc: ThriftDocument, includes: dict[str, IDLModule]) -> None:
        self.doc = doc
        self.includes = includes
        self.file = str(doc.path)
        self._typedef_refs: dict[str, TypeRef] = {}
        self._resolving: set[str] = set()

    def error(self, line: int, reason: str) -> IDLError:
        return IDLError.parse_error(self.file, line, reason)

    def resolve(self, expr: TypeExpr) -> TypeRef:
        if expr.name in BASE_TYPES:
            return TypeRef(BASE_TYPES[expr.name])
        if expr.name == "map":
            return TypeRef(TypeKind.MAP, key=self.resolve(expr.args[0]), value=self.resolve(expr.args[1]))
        if expr.name in ("list", "set"):
            return TypeRef(TypeKind(expr.name), value=self.resolve(expr.args[0]))
        if "." in expr.name:
            alias, _, name = expr.name.rpartition(".")
            included = self.includes.get(alias)
            if included is None:
                raise self.error(expr.line, f"unknown include {alias!r} in type {expr.name!r}")
            return self._foreign(included, name, expr)
        return self._local(expr.name, expr.line)

    def _local(self, name: str, line: int) -> TypeRef:
        doc = self.doc
        if name in doc.structs:
            return TypeRef(TypeKind.STRUCT, name=name, file=self.file)
        if name in doc.enums:
            return TypeRef(TypeKind.ENUM, name=name, file=self.file)
        if name in doc.typedefs:
            if name in self._typedef_refs:
                return self._typedef_refs[name]
            if name in self._resolving:
                raise self.error(line, f"typedef {name!r} refers to itself")
            self._resolving.add(name)
            target = self.resolve(doc.typedefs[name][0])
            self._resolving.discard(name)
            ref = TypeRef(TypeKind.TYPEDEF, name=name, file=self.file, target=target)
            self._typedef_refs[name] = ref
            return ref
        raise self.error(line, f"unknown type {name!r}")

    @staticmethod
    def _foreign(module: IDLModule, name: str, expr: TypeExpr) -> TypeRef:
        file = str(module.path)
        if name in module.structs:
            return TypeRef(TypeKind.STRUCT, name=name, file=file)
        if name in module.enums:
            return TypeRef(TypeKind.ENUM, name=name, file=file)
        if name in module.typedefs:
            return TypeRef(TypeKind.TYPEDEF, name=name, file=file, target=module.typedefs[name].target)
        raise IDLError.parse_error(str(module.path), expr.line, f"unknown type {expr.name!r}")

    def field(self, raw: RawField) -> Field:
        annotations = {**raw.type_annotations, **raw.annotations}
        return Field(raw.name, self.resolve(raw.type), raw.id, raw.required, raw.default, annotations)

    def link(self) -> IDLModule:
        doc = self.doc
        module = IDLModule(
            path=doc.path,
            syntax="thrift",
            package=doc.namespaces.get("go", doc.path.stem),
            includes=dict(self.includes),
            namespaces=dict(doc.namespaces),
            enums=dict(doc.enums),
            constants=dict(doc.constants),
            content_hash=doc.content_hash,
        )
        for name, (target, annotations) in doc.typedefs.items():
            ref = self._local(name, target.line)
            assert ref.target is not None
            module.typedefs[name] = TypedefDecl(name, ref.target, self.file, annotations)
        for name, (kind, raw_fields, annotations) in doc.structs.items():
            module.structs[name] = StructDecl(name, kind, [self.field(f) for f in raw_fields], self.file, annotations)
        for name, extends, raw_functions, annotations in doc.services:
            functions = [
                Function(
                    name=fn.name,
                    arguments=[self.field(a) for a in fn.arguments],
                    return_type=self.resolve(fn.return_type) if fn.return_type else None,
                    exceptions=[self.field(e) for e in fn.exceptions],
                    oneway=fn.oneway,
                    annotations=fn.annotations,
                    line=fn.line,
                )
                for fn in raw_functions
            ]
            module.service_list.append(Service(name, functions, self.file, extends, annotations))
        return module


def link_thrift(doc: ThriftDocument, includes: dict[str, IDLModule]) -> IDLModule:
    """Resolve a parsed document against its loaded includes."""
    return _Linker(doc, includes).link()
