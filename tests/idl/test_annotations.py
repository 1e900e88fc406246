"""Tests for semantic annotation checks."""

from pathlib import Path

import pytest

from gatewaygen.core.errors import ErrorCode, IDLError
from gatewaygen.idl.annotations import validate_module
from gatewaygen.idl.thrift import link_thrift, parse_thrift


def _module(text: str):
    return link_thrift(parse_thrift(Path("/idl/a.thrift"), text), {})


class TestJsType:
    """``js.type`` applies to i64 only and takes Long or Date."""

    @pytest.mark.parametrize("key", ["js.type", "zanzibar.js.type"])
    def test_valid_on_i64(self, key: str) -> None:
        module = _module(f'struct A {{\n  1: i64 at ({key} = "Long")\n}}\n')

        validate_module(module, "zanzibar")

    def test_valid_through_typedef(self) -> None:
        module = _module('typedef i64 Millis\nstruct A {\n  1: Millis at (js.type = "Date")\n}\n')

        validate_module(module, "zanzibar")

    def test_rejects_non_i64_field(self) -> None:
        module = _module('struct A {\n  1: string at (js.type = "Long")\n}\n')

        with pytest.raises(IDLError) as exc_info:
            validate_module(module, "zanzibar")

        assert exc_info.value.code == ErrorCode.IDL_ANNOTATION_CONFLICT
        assert exc_info.value.details["target"] == "field A.at"
        assert "only applies to i64" in exc_info.value.details["reason"]

    def test_rejects_unknown_value(self) -> None:
        module = _module('typedef i64 Millis (js.type = "Int")\n')

        with pytest.raises(IDLError, match="must be one of"):
            validate_module(module, "zanzibar")

    def test_rejects_disagreeing_prefixed_and_bare_keys(self) -> None:
        module = _module('struct A {\n  1: i64 at (js.type = "Long", zanzibar.js.type = "Date")\n}\n')

        with pytest.raises(IDLError, match="disagrees"):
            validate_module(module, "zanzibar")


class TestBoxedRequest:
    """``http.req.def.boxed`` needs a single struct argument."""

    BASE = "struct Req {}\nstruct Resp {}\n"

    def test_boxed_single_struct_argument(self) -> None:
        module = _module(
            self.BASE + 'service S {\n  Resp call(1: Req req) (zanzibar.http.req.def.boxed = "true")\n}\n'
        )

        validate_module(module, "zanzibar")
        assert module.is_unwrapped(module.service("S").functions[0], "zanzibar")

    def test_unboxed_is_not_unwrapped(self) -> None:
        module = _module(self.BASE + "service S {\n  Resp call(1: Req req)\n}\n")

        assert not module.is_unwrapped(module.service("S").functions[0], "zanzibar")

    def test_rejects_two_arguments(self) -> None:
        module = _module(
            self.BASE
            + 'service S {\n  Resp call(1: Req a, 2: Req b) (zanzibar.http.req.def.boxed = "true")\n}\n'
        )

        with pytest.raises(IDLError) as exc_info:
            validate_module(module, "zanzibar")

        assert exc_info.value.details["target"] == "function S::call"

    def test_rejects_primitive_argument(self) -> None:
        module = _module(
            self.BASE + 'service S {\n  Resp call(1: string s) (zanzibar.http.req.def.boxed = "true")\n}\n'
        )

        with pytest.raises(IDLError, match="exactly one struct argument"):
            validate_module(module, "zanzibar")

    def test_rejects_non_boolean(self) -> None:
        module = _module(
            self.BASE + 'service S {\n  Resp call(1: Req req) (zanzibar.http.req.def.boxed = "yes")\n}\n'
        )

        with pytest.raises(IDLError, match="must be true or false"):
            validate_module(module, "zanzibar")
