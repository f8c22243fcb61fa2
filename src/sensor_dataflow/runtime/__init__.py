"""Runtimes locais: jobs batch, treino e hosting."""

from .artifacts import ModelArtifactStore, ModelBundle
from .hosting import HostingRuntime
from .jobs import JobDefinition, JobRun, JobRunner, JobRunStatus
from .training import AlgorithmRegistry, TrainingJobRequest, TrainingJobStatus, TrainingRuntime

__all__ = [
    "AlgorithmRegistry",
    "HostingRuntime",
    "JobDefinition",
    "JobRun",
    "JobRunStatus",
    "JobRunner",
    "ModelArtifactStore",
    "ModelBundle",
    "TrainingJobRequest",
    "TrainingJobStatus",
    "TrainingRuntime",
]
