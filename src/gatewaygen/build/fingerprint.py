"""Instance fingerprints for incremental builds.

A fingerprint is a SHA-256 over everything a generator may read: the
instance's normalised config, the fingerprints of its whole dependency
closure in emission order, the bytes of its IDL file and every file that
file includes, the engine and generator version tags, and a digest of the
build options. Equal fingerprints mean byte-identical output.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Sequence
from pathlib import Path

from gatewaygen.config.models import BuildConfig
from gatewaygen.module.models import ResolvedInstance

GENERATOR_VERSION = "1"
"""Engine-wide version tag. Bump when output shared by all generators changes
(templates of the common header, file layout). Per-generator changes bump
that generator's own ``version`` instead."""

# Fields that do not reach generated output.
_OPTION_FIELDS_EXCLUDED = {"config_dir", "env_overrides", "incremental_cache_file", "instance_name_pattern"}


def options_digest(config: BuildConfig, copyright_header: str = "", option_files: Iterable[Path] = ()) -> str:
    """Digest of the build options that reach generated output.

    ``option_files`` are hashed by content: middleware configs and their
    schemas shape generated endpoints without appearing in ``config``.
    """
    payload = config.model_dump(mode="json", exclude=_OPTION_FIELDS_EXCLUDED)
    h = hashlib.sha256(json.dumps(payload, sort_keys=True).encode())
    h.update(copyright_header.encode())
    h.update(b"\0files\0")
    h.update(hash_files(option_files).encode())
    return h.hexdigest()


def normalised_config(ri: ResolvedInstance) -> bytes:
    """Canonical JSON of the parts of an instance config the build uses."""
    instance = ri.instance
    payload = {
        "name": instance.instance_name,
        "type": instance.type_name,
        "directory": instance.relative_directory,
        "dependencies": [str(k) for k in instance.dependencies],
        "config": instance.config,
        "isExportGenerated": instance.package_info.is_export_generated,
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()


def hash_files(paths: Iterable[Path]) -> str:
    """Digest of (path, contents) pairs in path order."""
    h = hashlib.sha256()
    for path in sorted(paths):
        h.update(str(path).encode())
        h.update(b"\0")
        h.update(hashlib.sha256(path.read_bytes()).digest())
    return h.hexdigest()


def compute_fingerprint(
    ri: ResolvedInstance,
    dependency_fingerprints: Sequence[tuple[str, str]],
    idl_files: Iterable[Path],
    generator_version: str,
    build_options: str,
) -> str:
    """Fingerprint of one resolved instance.

    Args:
        ri: The instance.
        dependency_fingerprints: ``(key, fingerprint)`` for every member of
            the closure, in emission order.
        idl_files: The instance's IDL file and its transitive includes.
        generator_version: The generator's (and post-generation hooks') version tag.
        build_options: ``options_digest`` of the build config.
    """
    h = hashlib.sha256()
    h.update(f"engine:{GENERATOR_VERSION}\0generator:{generator_version}\0options:{build_options}\0".encode())
    h.update(normalised_config(ri))
    h.update(b"\0deps\0")
    for key, fingerprint in dependency_fingerprints:
        h.update(f"{key}={fingerprint}\0".encode())
    h.update(b"idl\0")
    h.update(hash_files(idl_files).encode())
    return h.hexdigest()
