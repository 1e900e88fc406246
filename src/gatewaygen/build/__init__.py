"""Build pipeline: orchestration, incremental cache, file writer and formatters."""

from gatewaygen.build.cache import CacheEntry, IncrementalCache
from gatewaygen.build.fingerprint import GENERATOR_VERSION, compute_fingerprint
from gatewaygen.build.formatters import FormatterPipeline
from gatewaygen.build.orchestrator import BuildMode, BuildOrchestrator, BuildReport, InstanceState
from gatewaygen.build.writer import FileWriter, StagedInstance

__all__ = [
    "GENERATOR_VERSION",
    "BuildMode",
    "BuildOrchestrator",
    "BuildReport",
    "CacheEntry",
    "FileWriter",
    "FormatterPipeline",
    "IncrementalCache",
    "InstanceState",
    "StagedInstance",
    "compute_fingerprint",
]
