"""Configuration constants.

Values here are not user-configurable. For configurable values, see models.py.
"""

DEFAULT_ANNOTATION_PREFIX = "zanzibar"
"""Prefix of recognised IDL annotations (``zanzibar.http.req.def``)."""

DEFAULT_RUNTIME_PACKAGE = "github.com/uber/zanzibar/runtime"
"""Go import path of the gateway runtime."""

DEFAULT_CACHE_FILE = ".gwgen-cache.json"
"""Incremental cache file name, relative to the generated-code root."""

DEFAULT_FORMATTERS: dict[str, tuple[tuple[str, ...], ...]] = {
    ".go": (
        ("gofmt", "-s", "-w", "-e"),
        ("goimports", "-w", "-e"),
    ),
}
"""Post-write formatter commands per output extension."""

CONFIG_FILE_SUFFIX = "-config"
"""Instance config files are named ``<className>-config.json`` (or .yaml)."""

INSTANCE_CONFIG_EXTENSIONS = (".json", ".yaml", ".yml")

DEFAULT_INSTANCE_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$"
"""Instance names must be non-empty and path-safe."""

IO_BOUND_MULTIPLIER = 4
"""Worker multiplier applied to the CPU count for IO-bound phases."""
