"""Template rendering shared by the built-in generators."""

from __future__ import annotations

import json
from collections.abc import Iterable
from functools import lru_cache
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from gatewaygen.codegen.casing import camel_case, lint_acronym, pascal_case, title
from gatewaygen.codegen.package import PackageHelper
from gatewaygen.core.errors import GenerationError

TEMPLATE_DIR = Path(__file__).parent / "templates"


class GeneratorOptions(BaseModel):
    """Base of the pydantic models validating an instance's ``config`` blob."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


def go_quote(value: str) -> str:
    """Go string literal for ``value``."""
    return json.dumps(value)


def comment_header(text: str) -> str:
    """``text`` as a Go line-comment block followed by a blank line."""
    if not text.strip():
        return ""
    lines = text.strip("\n").splitlines()
    if all(line.startswith("//") or not line.strip() for line in lines):
        body = "\n".join(lines)
    else:
        body = "\n".join(f"// {line}".rstrip() for line in lines)
    return body + "\n\n"


def go_imports(pairs: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    """Deduplicated ``(alias, path)`` imports sorted by path."""
    return sorted(set(pairs), key=lambda p: (p[1], p[0]))


class TemplateRenderer:
    """Jinja2 environment over the bundled ``*.tmpl`` files."""

    def __init__(self, template_dir: Path = TEMPLATE_DIR) -> None:
        self._env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
            autoescape=False,
        )
        self._env.filters["camel"] = camel_case
        self._env.filters["pascal"] = pascal_case
        self._env.filters["title"] = title
        self._env.filters["lint_acronym"] = lint_acronym
        self._env.filters["quote"] = go_quote

    def list_templates(self) -> list[str]:
        return self._env.list_templates(extensions=["tmpl"])

    def render(self, template_name: str, context: dict[str, Any], helper: PackageHelper) -> bytes:
        """Render ``template_name`` prefixed with the copyright header."""
        try:
            text = self._env.get_template(template_name).render(**context)
        except TemplateError as e:
            raise GenerationError.generator_failed(
                f"template {template_name}: {e}", template=template_name
            ) from e
        return (comment_header(helper.copyright_header()) + text).encode()


@lru_cache(maxsize=1)
def default_renderer() -> TemplateRenderer:
    return TemplateRenderer()
