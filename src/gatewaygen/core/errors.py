"""gatewaygen error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Module system (classes, instances, dependencies)
- 4xxx: IDL
- 5xxx: Generation
- 6xxx: Output (paths, writes, formatters)
- 7xxx: Incremental cache
- 9xxx: Internal
"""

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_KEY = 2003
    CONFIG_FILE_NOT_FOUND = 2004
    CONFIG_TYPE_MISMATCH = 2005
    CONFIG_FROZEN = 2006

    # Module system (3xxx)
    INSTANCE_INVALID = 3001
    UNKNOWN_CLASS = 3002
    UNKNOWN_TYPE = 3003
    UNKNOWN_DEPENDENCY = 3004
    CYCLE_DETECTED = 3005
    CLASS_INVALID = 3006

    # IDL (4xxx)
    IDL_PARSE_ERROR = 4001
    IDL_INCLUDE_NOT_FOUND = 4002
    IDL_ANNOTATION_CONFLICT = 4003

    # Generation (5xxx)
    GENERATOR_FAILED = 5001

    # Output (6xxx)
    PATH_ESCAPE = 6001
    IO_WRITE_FAILED = 6002
    FORMATTER_FAILED = 6003
    INVALID_PATH = 6004

    # Cache (7xxx)
    CACHE_CORRUPT = 7001

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True)
class GatewayGenError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CYCLE_DETECTED')."""
        return self.code.name

    @property
    def kind(self) -> str:
        """Taxonomy name, e.g. 'cycle-detected'."""
        return self.code.name.lower().replace("_", "-")

    def with_instance(self, class_name: str, instance_name: str) -> "GatewayGenError":
        """Return a copy carrying (class_name, instance_name) context.

        The innermost context wins: an error already attributed to an
        instance is returned unchanged.
        """
        if "class_name" in self.details:
            return self
        return replace(
            self,
            message=f'{class_name} "{instance_name}": {self.message}',
            details={**self.details, "class_name": class_name, "instance_name": instance_name},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(GatewayGenError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, key: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{key}': {reason}",
            details={"key": key, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_key(cls, key: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_KEY,
            message=f"Missing required config key: {key}",
            details={"key": key},
        )

    @classmethod
    def type_mismatch(cls, key: str, expected: str, actual: Any) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_TYPE_MISMATCH,
            message=f"Config key '{key}' expected {expected}, got {type(actual).__name__}",
            details={"key": key, "expected": expected, "actual": type(actual).__name__},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )

    @classmethod
    def frozen(cls, key: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FROZEN,
            message=f"Config store is read-only, cannot set '{key}'",
            details={"key": key},
        )


class ModuleError(GatewayGenError):
    """Module class, instance and dependency errors."""

    @classmethod
    def instance_invalid(cls, path: str, reason: str) -> "ModuleError":
        return cls(
            code=ErrorCode.INSTANCE_INVALID,
            message=f"Invalid module instance at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def class_invalid(cls, class_name: str, reason: str) -> "ModuleError":
        return cls(
            code=ErrorCode.CLASS_INVALID,
            message=f"Invalid module class {class_name!r}: {reason}",
            details={"class": class_name, "reason": reason},
        )

    @classmethod
    def unknown_class(cls, class_name: str) -> "ModuleError":
        return cls(
            code=ErrorCode.UNKNOWN_CLASS,
            message=f"Module class {class_name!r} is not defined",
            details={"class": class_name},
        )

    @classmethod
    def unknown_type(cls, class_name: str, type_name: str) -> "ModuleError":
        return cls(
            code=ErrorCode.UNKNOWN_TYPE,
            message=f"Type {type_name!r} is not registered for class {class_name!r}",
            details={"class": class_name, "type": type_name},
        )

    @classmethod
    def unknown_dependency(
        cls, class_name: str, instance_name: str, dep_class: str, dep_instance: str
    ) -> "ModuleError":
        return cls(
            code=ErrorCode.UNKNOWN_DEPENDENCY,
            message=(
                f"Unknown {dep_class} dependency {dep_instance!r} "
                f"in dependencies for {class_name} {instance_name!r}"
            ),
            details={
                "class_name": class_name,
                "instance_name": instance_name,
                "dependency": f"{dep_class}/{dep_instance}",
            },
        )

    @classmethod
    def cycle_detected(cls, cycle: list[str]) -> "ModuleError":
        return cls(
            code=ErrorCode.CYCLE_DETECTED,
            message=f"Dependency cycle detected: {' -> '.join(cycle)}",
            details={"cycle": cycle},
        )


class IDLError(GatewayGenError):
    """IDL parsing and semantic errors."""

    @classmethod
    def parse_error(cls, path: str, line: int, reason: str) -> "IDLError":
        return cls(
            code=ErrorCode.IDL_PARSE_ERROR,
            message=f"{path}:{line}: {reason}",
            details={"path": path, "line": line, "reason": reason},
        )

    @classmethod
    def include_not_found(cls, path: str, include: str) -> "IDLError":
        return cls(
            code=ErrorCode.IDL_INCLUDE_NOT_FOUND,
            message=f"{path}: included file not found: {include}",
            details={"path": path, "include": include},
        )

    @classmethod
    def annotation_conflict(cls, path: str, target: str, key: str, reason: str) -> "IDLError":
        return cls(
            code=ErrorCode.IDL_ANNOTATION_CONFLICT,
            message=f"{path}: annotation {key!r} on {target}: {reason}",
            details={"path": path, "target": target, "key": key, "reason": reason},
        )


class GenerationError(GatewayGenError):
    """Generator failures."""

    @classmethod
    def generator_failed(cls, reason: str, **details: Any) -> "GenerationError":
        return cls(
            code=ErrorCode.GENERATOR_FAILED,
            message=f"Generator failed: {reason}",
            details=details,
        )


class OutputError(GatewayGenError):
    """Output tree errors: path safety, writes, formatters."""

    @classmethod
    def path_escape(cls, path: str, root: str) -> "OutputError":
        return cls(
            code=ErrorCode.PATH_ESCAPE,
            message=f"Path {path!r} escapes the output root {root!r}",
            details={"path": path, "root": root},
        )

    @classmethod
    def invalid_path(cls, path: str, root: str) -> "OutputError":
        return cls(
            code=ErrorCode.INVALID_PATH,
            message=f"Path {path!r} is not inside {root!r}",
            details={"path": path, "root": root},
        )

    @classmethod
    def write_failed(cls, path: str, reason: str) -> "OutputError":
        return cls(
            code=ErrorCode.IO_WRITE_FAILED,
            message=f"Failed to write {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def formatter_failed(cls, path: str, command: list[str], reason: str) -> "OutputError":
        return cls(
            code=ErrorCode.FORMATTER_FAILED,
            message=f"Formatter {command[0]!r} failed on {path}: {reason}",
            details={"path": path, "command": command, "reason": reason},
        )


class CacheError(GatewayGenError):
    """Incremental cache errors. Logged, never fatal."""

    @classmethod
    def corrupt(cls, path: str, reason: str) -> "CacheError":
        return cls(
            code=ErrorCode.CACHE_CORRUPT,
            message=f"Incremental cache at {path} is corrupt: {reason}",
            details={"path": path, "reason": reason},
        )


class InternalError(GatewayGenError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
