"""
Orquestrador do workflow de ML: treino → registro → hosting → deploy.

A máquina de estados é linear e explícita (`TRANSITIONS`):

    TRAIN → REGISTER_MODEL → CONFIGURE_HOSTING → DEPLOY_ENDPOINT → SUCCEEDED
      └──────────┴─────────────────┴──────────────────┴──────→ FAILED

Cada `StartSignal` cria uma execução independente. Uma falha em qualquer
estado encerra a execução em FAILED; artefatos já criados permanecem (sem
rollback) e não há retry automático.

Execuções concorrentes não se coordenam: todas fazem upsert no mesmo
endpoint de nome fixo e a última a implantar vence.
"""

from __future__ import annotations

import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from sensor_dataflow.core.config.settings import PipelineSettings
from sensor_dataflow.core.errors import error_from_exception, training_timeout
from sensor_dataflow.core.exceptions import TrainingFailedError, TrainingTimeoutError
from sensor_dataflow.core.traceability.manifest import (
    RunManifest,
    add_event,
    create_manifest,
    save_manifest,
    step_failed,
    step_finished,
    step_started,
)
from sensor_dataflow.runtime.hosting import DEFAULT_VARIANT_NAME, HostingRuntime
from sensor_dataflow.runtime.training import (
    MAX_RUNTIME_EXCEEDED,
    TrainingJobRequest,
    TrainingJobStatus,
    TrainingRuntime,
)

from .events import StartSignal


class WorkflowState(str, Enum):
    TRAIN = "TRAIN"
    REGISTER_MODEL = "REGISTER_MODEL"
    CONFIGURE_HOSTING = "CONFIGURE_HOSTING"
    DEPLOY_ENDPOINT = "DEPLOY_ENDPOINT"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def terminal(self) -> bool:
        return self in (WorkflowState.SUCCEEDED, WorkflowState.FAILED)


TRANSITIONS: Dict[WorkflowState, Dict[bool, WorkflowState]] = {
    WorkflowState.TRAIN: {True: WorkflowState.REGISTER_MODEL, False: WorkflowState.FAILED},
    WorkflowState.REGISTER_MODEL: {True: WorkflowState.CONFIGURE_HOSTING, False: WorkflowState.FAILED},
    WorkflowState.CONFIGURE_HOSTING: {True: WorkflowState.DEPLOY_ENDPOINT, False: WorkflowState.FAILED},
    WorkflowState.DEPLOY_ENDPOINT: {True: WorkflowState.SUCCEEDED, False: WorkflowState.FAILED},
}


def next_state(state: WorkflowState, succeeded: bool) -> WorkflowState:
    if state not in TRANSITIONS:
        raise ValueError(f"No transitions from terminal state: {state.value}")
    return TRANSITIONS[state][bool(succeeded)]


@dataclass(frozen=True)
class WorkflowTemplate:
    """Grafo declarativo do workflow com seus parâmetros fixos."""

    training_image: str
    training_instance_type: str
    training_instance_count: int
    max_runtime_seconds: float
    hyperparameters: Dict[str, Any]
    training_data_prefix: str
    target: str
    hosting_instance_type: str
    endpoint_name: str
    variant_name: str = DEFAULT_VARIANT_NAME
    initial_instance_count: int = 1
    initial_variant_weight: float = 1.0

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> "WorkflowTemplate":
        return cls(
            training_image=settings.training.image,
            training_instance_type=settings.training.instance_type,
            training_instance_count=settings.training.instance_count,
            max_runtime_seconds=settings.training.max_runtime_seconds,
            hyperparameters=dict(settings.training.hyperparameters),
            training_data_prefix=settings.store.aggregated_prefix,
            target=settings.training.target,
            hosting_instance_type=settings.hosting.instance_type,
            endpoint_name=settings.hosting.endpoint_name,
        )

    def states(self) -> List[WorkflowState]:
        return [s for s in TRANSITIONS]


@dataclass
class WorkflowExecution:
    execution_id: str
    signal: StartSignal
    state: WorkflowState
    started_at: datetime
    history: List[WorkflowState] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)
    error: Optional[Dict[str, Any]] = None
    finished_at: Optional[datetime] = None
    manifest: Optional[RunManifest] = field(default=None, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.state == WorkflowState.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "source_event_id": self.signal.source_event_id,
            "state": self.state.value,
            "history": [s.value for s in self.history],
            "outputs": dict(self.outputs),
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Orchestrator:
    """Cria e conduz execuções do workflow a partir de sinais de início."""

    def __init__(
        self,
        *,
        template: WorkflowTemplate,
        training: TrainingRuntime,
        hosting: HostingRuntime,
        config_hash: str = "",
        dataflow_version: str = "0.0.0",
        max_workers: int = 4,
        manifest_dir: Optional[Path] = None,
    ):
        self.template = template
        self.training = training
        self.hosting = hosting
        self.config_hash = config_hash
        self.dataflow_version = dataflow_version
        self.manifest_dir = Path(manifest_dir) if manifest_dir is not None else None

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="workflow")
        self._executions: Dict[str, WorkflowExecution] = {}
        self._futures: List[Future] = []
        self._lock = threading.Lock()

        self._handlers: Dict[WorkflowState, Callable[[WorkflowExecution], Dict[str, str]]] = {
            WorkflowState.TRAIN: self._train,
            WorkflowState.REGISTER_MODEL: self._register_model,
            WorkflowState.CONFIGURE_HOSTING: self._configure_hosting,
            WorkflowState.DEPLOY_ENDPOINT: self._deploy_endpoint,
        }

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------
    def start(self, signal: StartSignal) -> WorkflowExecution:
        """Cria e executa uma execução até um estado terminal (bloqueante)."""
        execution = self._create_execution(signal)
        return self._drive(execution)

    def start_async(self, signal: StartSignal) -> "Future[WorkflowExecution]":
        execution = self._create_execution(signal)
        future = self._executor.submit(self._drive, execution)
        with self._lock:
            self._futures.append(future)
        return future

    def get_execution(self, execution_id: str) -> WorkflowExecution:
        with self._lock:
            if execution_id not in self._executions:
                raise KeyError(f"unknown execution: {execution_id}")
            return self._executions[execution_id]

    def list_executions(self) -> List[WorkflowExecution]:
        with self._lock:
            return sorted(self._executions.values(), key=lambda e: e.started_at)

    def wait_all(self, timeout: Optional[float] = None) -> List[WorkflowExecution]:
        """Aguarda as execuções assíncronas submetidas até agora.

        `timeout` é um prazo único para todas. Execuções que não terminaram
        no prazo continuam na lista com estado não terminal.
        """
        with self._lock:
            futures = list(self._futures)
        wait_futures(futures, timeout=timeout)
        return self.list_executions()

    def shutdown(self, wait: bool = True) -> None:
        # sem espera, execuções ainda na fila são canceladas
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    # ------------------------------------------------------------------
    # Execução
    # ------------------------------------------------------------------
    def _create_execution(self, signal: StartSignal) -> WorkflowExecution:
        execution_id = f"wf-{uuid.uuid4().hex[:12]}"
        started_at = _now()
        execution = WorkflowExecution(
            execution_id=execution_id,
            signal=signal,
            state=WorkflowState.TRAIN,
            started_at=started_at,
        )
        execution.manifest = create_manifest(
            run_id=execution_id,
            started_at=started_at,
            dataflow_version=self.dataflow_version,
            config_hash=self.config_hash,
            kind="workflow",
            extra_inputs={"source_event_id": signal.source_event_id, "signal_id": signal.signal_id},
        )
        with self._lock:
            self._executions[execution_id] = execution
        return execution

    def _drive(self, execution: WorkflowExecution) -> WorkflowExecution:
        manifest = execution.manifest
        while not execution.state.terminal:
            state = execution.state
            execution.history.append(state)
            step_started(manifest, step_id=state.value, kind="workflow_state", ts=_now())
            try:
                outputs = self._handlers[state](execution)
            except Exception as e:
                error = error_from_exception(e)
                execution.error = {**error.to_dict(), "state": state.value}
                step_failed(manifest, step_id=state.value, ts=_now(), error=error.message)
                execution.state = next_state(state, succeeded=False)
                continue

            execution.outputs.update(outputs)
            step_finished(
                manifest,
                step_id=state.value,
                ts=_now(),
                result={"status": "success", "summary": f"{state.value} completed", "artifacts": dict(outputs)},
            )
            execution.state = next_state(state, succeeded=True)

        execution.finished_at = _now()
        add_event(
            manifest,
            event_type="workflow_finished",
            ts=execution.finished_at,
            payload={"state": execution.state.value, "outputs": dict(execution.outputs)},
        )
        if self.manifest_dir is not None:
            save_manifest(manifest, self.manifest_dir / "workflows" / f"{execution.execution_id}.json")
        return execution

    # ------------------------------------------------------------------
    # Estados
    # ------------------------------------------------------------------
    def _train(self, execution: WorkflowExecution) -> Dict[str, str]:
        t = self.template
        name = f"{execution.execution_id}-train"
        job = self.training.create_training_job(
            TrainingJobRequest(
                training_job_name=name,
                image=t.training_image,
                instance_type=t.training_instance_type,
                instance_count=t.training_instance_count,
                max_runtime_seconds=t.max_runtime_seconds,
                training_data_prefix=t.training_data_prefix,
                target=t.target,
                hyperparameters=dict(t.hyperparameters),
            )
        )
        if job.status == TrainingJobStatus.STOPPED and job.secondary_status == MAX_RUNTIME_EXCEEDED:
            payload = training_timeout(training_job_name=name, max_runtime_seconds=t.max_runtime_seconds)
            raise TrainingTimeoutError(message=payload.message, details=payload.details, hint=payload.hint)
        if job.status != TrainingJobStatus.COMPLETED or not job.model_artifact:
            raise TrainingFailedError(
                message=f"Training job {name} ended as {job.status.value}",
                details={"training_job_name": name, "failure_reason": job.failure_reason},
                hint="Revise os dados agregados e re-dispare a execução.",
            )
        return {"training_job_name": name, "model_artifact": job.model_artifact}

    def _register_model(self, execution: WorkflowExecution) -> Dict[str, str]:
        name = f"{execution.execution_id}-model"
        self.hosting.create_model(
            name=name,
            image=self.template.training_image,
            model_artifact=execution.outputs["model_artifact"],
        )
        return {"model_name": name}

    def _configure_hosting(self, execution: WorkflowExecution) -> Dict[str, str]:
        t = self.template
        name = f"{execution.execution_id}-config"
        self.hosting.create_endpoint_config(
            name=name,
            model_name=execution.outputs["model_name"],
            instance_type=t.hosting_instance_type,
            variant_name=t.variant_name,
            initial_instance_count=t.initial_instance_count,
            initial_variant_weight=t.initial_variant_weight,
        )
        return {"endpoint_config_name": name}

    def _deploy_endpoint(self, execution: WorkflowExecution) -> Dict[str, str]:
        endpoint = self.hosting.create_or_update_endpoint(
            name=self.template.endpoint_name,
            config_name=execution.outputs["endpoint_config_name"],
            updated_by=execution.execution_id,
        )
        return {"endpoint_name": endpoint.name}


__all__ = [
    "Orchestrator",
    "TRANSITIONS",
    "WorkflowExecution",
    "WorkflowState",
    "WorkflowTemplate",
    "next_state",
]
