"""Work scheduler."""

from gatewaygen.scheduler.runner import Runner, default_parallelism, fixed_bounded_runner, unbounded_runner

__all__ = ["Runner", "default_parallelism", "fixed_bounded_runner", "unbounded_runner"]
