"""Tests for Go identifier casing."""

import pytest

from gatewaygen.codegen.casing import camel_case, lint_acronym, package_name, pascal_case, title


@pytest.mark.parametrize(
    ("src", "expected"),
    [
        ("google-now", "googleNow"),
        ("http_client", "httpClient"),
        ("user_id", "userID"),
        ("clients_echo_echo", "clientsEchoEcho"),
        ("legacy-api", "legacyAPI"),
        ("echo", "echo"),
        ("Echo", "echo"),
    ],
)
def test_camel_case(src: str, expected: str) -> None:
    assert camel_case(src) == expected


@pytest.mark.parametrize(
    ("src", "expected"),
    [
        ("get_user_id", "GetUserID"),
        ("echo", "Echo"),
        ("HTTP", "HTTP"),
        ("FOO", "FOO"),
        ("FOO_BAR", "FooBar"),
        ("__leading", "Leading"),
        ("alreadyCamel", "AlreadyCamel"),
    ],
)
def test_pascal_case(src: str, expected: str) -> None:
    assert pascal_case(src) == expected


@pytest.mark.parametrize(
    ("src", "expected"),
    [
        ("user_id", "UserID"),
        ("getHttpUrl", "GetHTTPURL"),
        ("echo", "Echo"),
    ],
)
def test_lint_acronym(src: str, expected: str) -> None:
    assert lint_acronym(src) == expected


def test_package_name() -> None:
    assert package_name("google-now") == "googlenow"
    assert package_name("Echo_Client") == "echoclient"


def test_title() -> None:
    assert title("echo") == "Echo"
    assert title("") == ""
