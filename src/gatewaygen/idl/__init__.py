"""IDL spec loading: Thrift and proto front ends behind a memoized loader."""

from gatewaygen.idl.loader import IDL_SUFFIXES, IDLLoader
from gatewaygen.idl.models import (
    Field,
    Function,
    IDLModule,
    JSTypedField,
    Service,
    TypeKind,
    TypeRef,
)
from gatewaygen.idl.proto import parse_proto
from gatewaygen.idl.thrift import parse_thrift

__all__ = [
    "IDL_SUFFIXES",
    "IDLLoader",
    "Field",
    "Function",
    "IDLModule",
    "JSTypedField",
    "Service",
    "TypeKind",
    "TypeRef",
    "parse_proto",
    "parse_thrift",
]
