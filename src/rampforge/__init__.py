"""RampForge: ramping-stage load tests with pass/fail thresholds, written in Python."""

from __future__ import annotations

from rampforge.dsl.decorators import scenario, setup, task, teardown
from rampforge.dsl.http_client import HttpClient, RequestMetric, Response
from rampforge.dsl.options import Executor, Options, ScenarioConfig, Threshold
from rampforge.engine.runner import LoadTestRunner
from rampforge.metrics.models import ErrorKind, TestResult
from rampforge.patterns.base import LoadPattern
from rampforge.patterns.constant import ConstantPattern
from rampforge.patterns.stages import RampingStagesPattern, Stage

__version__ = "0.1.0"

__all__ = [
    "ConstantPattern",
    "ErrorKind",
    "Executor",
    "HttpClient",
    "LoadPattern",
    "LoadTestRunner",
    "Options",
    "RampingStagesPattern",
    "RequestMetric",
    "Response",
    "ScenarioConfig",
    "Stage",
    "TestResult",
    "Threshold",
    "scenario",
    "setup",
    "task",
    "teardown",
]
