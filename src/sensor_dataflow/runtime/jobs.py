"""
JobRunner: executor local dos jobs batch (clean / aggregate).

Cada `JobDefinition` associa um nome de job a uma fábrica de Steps
(`entrypoint`), ao script publicado em `scripts/` e aos argumentos
default (`--input_path`, `--output_path`, `--engine`).

`start_job_run` executa o job até um estado terminal:
- o Engine roda em um worker thread; se `timeout_seconds` for excedido o
  run termina em TIMEOUT e o job é sinalizado para não gravar saída
- `stop_job_run` sinaliza a interrupção de um run em andamento (STOPPED)
- ao terminar, todos os listeners de conclusão recebem o `JobRun`

Não há retry automático: um run com falha permanece com falha e o
operador re-executa manualmente.
"""

from __future__ import annotations

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from sensor_dataflow.core.engine.engine import Engine, RunResult
from sensor_dataflow.core.errors import engine_configuration_error, job_timeout
from sensor_dataflow.core.pipeline.context import RunContext
from sensor_dataflow.core.pipeline.step import Step
from sensor_dataflow.core.pipeline.types import StepStatus
from sensor_dataflow.core.traceability.manifest import (
    RunManifest,
    add_event,
    create_manifest,
    save_manifest,
)
from sensor_dataflow.jobs.common import CANCEL_EVENT_META


REQUIRED_ARGUMENTS = ("input_path", "output_path", "engine")


class JobRunStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"
    TIMEOUT = "TIMEOUT"

    @property
    def terminal(self) -> bool:
        return self is not JobRunStatus.RUNNING


@dataclass(frozen=True)
class JobDefinition:
    """Definição estática de um job batch."""

    name: str
    entrypoint: Callable[[], Sequence[Step]]
    script_key: str
    default_arguments: Dict[str, str] = field(default_factory=dict)
    timeout_seconds: float = 3600


@dataclass
class JobRun:
    """Estado de um job run (único por `run_id`)."""

    run_id: str
    job_name: str
    arguments: Dict[str, str]
    status: JobRunStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    error: Optional[Dict[str, Any]] = None
    result: Optional[RunResult] = field(default=None, repr=False)
    manifest: Optional[RunManifest] = field(default=None, repr=False)
    events: List[Dict[str, Any]] = field(default_factory=list, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.status == JobRunStatus.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "job_name": self.job_name,
            "arguments": dict(self.arguments),
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "error": self.error,
        }


CompletionListener = Callable[[JobRun], None]


def normalize_arguments(arguments: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Aceita `--input_path` ou `input_path` e devolve chaves sem prefixo."""
    out: Dict[str, str] = {}
    for k, v in (arguments or {}).items():
        name = str(k).lstrip("-")
        if not name:
            raise ValueError(f"Invalid job argument name: {k!r}")
        out[name] = str(v)
    return out


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JobRunner:
    """Registry + executor de jobs batch com notificação de conclusão."""

    def __init__(
        self,
        *,
        store: Any,
        config: Dict[str, Any],
        config_hash: str = "",
        dataflow_version: str = "0.0.0",
        manifest_dir: Optional[Path] = None,
    ):
        self.store = store
        self.config = config
        self.config_hash = config_hash
        self.dataflow_version = dataflow_version
        self.manifest_dir = Path(manifest_dir) if manifest_dir is not None else None

        self._definitions: Dict[str, JobDefinition] = {}
        self._runs: Dict[str, JobRun] = {}
        self._cancel: Dict[str, threading.Event] = {}
        self._listeners: List[CompletionListener] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------
    def register(self, definition: JobDefinition) -> None:
        if not isinstance(definition, JobDefinition):
            raise TypeError("definition must be a JobDefinition")
        if not isinstance(definition.name, str) or not definition.name.strip():
            raise ValueError("job name must be a non-empty string")
        if definition.name in self._definitions:
            raise ValueError(f"job already registered: {definition.name}")
        self._definitions[definition.name] = definition

    def get_definition(self, name: str) -> JobDefinition:
        if name not in self._definitions:
            raise KeyError(f"unknown job: {name}")
        return self._definitions[name]

    def list_jobs(self) -> List[str]:
        return sorted(self._definitions.keys())

    def add_completion_listener(self, listener: CompletionListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------
    def get_job_run(self, run_id: str) -> JobRun:
        with self._lock:
            if run_id not in self._runs:
                raise KeyError(f"unknown job run: {run_id}")
            return self._runs[run_id]

    def list_job_runs(self, job_name: Optional[str] = None) -> List[JobRun]:
        with self._lock:
            runs = list(self._runs.values())
        if job_name is not None:
            runs = [r for r in runs if r.job_name == job_name]
        return sorted(runs, key=lambda r: r.started_at)

    def stop_job_run(self, run_id: str) -> bool:
        """Sinaliza a interrupção de um run em andamento. Retorna False se já terminou."""
        run = self.get_job_run(run_id)
        if run.status.terminal:
            return False
        self._cancel[run_id].set()
        return True

    def start_job_run(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> JobRun:
        """Executa o job até um estado terminal e notifica os listeners."""
        definition = self.get_definition(name)
        args = dict(normalize_arguments(definition.default_arguments))
        args.update(normalize_arguments(arguments))

        run_id = f"jr_{uuid.uuid4().hex}"
        cancel_event = threading.Event()
        run = JobRun(
            run_id=run_id,
            job_name=name,
            arguments=args,
            status=JobRunStatus.RUNNING,
            started_at=_now(),
        )
        manifest = create_manifest(
            run_id=run_id,
            started_at=run.started_at,
            dataflow_version=self.dataflow_version,
            config_hash=self.config_hash,
            kind="job",
            extra_inputs={"job_name": name, "arguments": dict(args), "script_key": definition.script_key},
        )
        run.manifest = manifest
        add_event(manifest, event_type="job_run_started", ts=run.started_at, payload={"job_name": name})

        with self._lock:
            self._runs[run_id] = run
            self._cancel[run_id] = cancel_event

        ctx = RunContext(
            run_id=run_id,
            created_at=run.started_at,
            config=self.config,
            store=self.store,
            arguments=args,
            meta={"job_name": name, CANCEL_EVENT_META: cancel_event},
        )

        missing = [a for a in REQUIRED_ARGUMENTS if not args.get(a)]
        if missing:
            self._finish(
                run,
                JobRunStatus.FAILED,
                error=engine_configuration_error(
                    message=f"Missing required job argument(s): {['--' + m for m in missing]}",
                    details={"job_name": name},
                    hint="Informe os argumentos na definição do job ou no start_job_run.",
                ).to_dict(),
            )
            return run

        engine = Engine(steps=list(definition.entrypoint()), ctx=ctx, manifest=manifest)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"job-{name}")
        future = executor.submit(engine.run)
        try:
            result = future.result(timeout=definition.timeout_seconds)
        except FutureTimeoutError:
            cancel_event.set()
            run.events = ctx.events
            self._finish(
                run,
                JobRunStatus.TIMEOUT,
                error=job_timeout(job_name=name, timeout_seconds=definition.timeout_seconds).to_dict(),
            )
            return run
        finally:
            executor.shutdown(wait=False)

        run.result = result
        run.events = ctx.events
        if result.succeeded:
            self._finish(run, JobRunStatus.SUCCEEDED)
            return run

        failure = result.first_failure()
        error = dict((failure.payload or {}).get("error") or {}) if failure else {}
        if failure is None:
            # nenhum Step falhou, mas algum não concluiu: saída incompleta
            incomplete = next((r for r in result.steps.values() if r.status != StepStatus.SUCCESS), None)
            error = engine_configuration_error(
                message="Job run ended with an incomplete step",
                details={"step_id": incomplete.step_id, "status": incomplete.status.value} if incomplete else {},
                hint="Todos os Steps do job precisam concluir com sucesso.",
            ).to_dict()
        status = JobRunStatus.STOPPED if cancel_event.is_set() else JobRunStatus.FAILED
        if failure is not None:
            error.setdefault("details", {})
            error["details"] = {**error["details"], "step_id": failure.step_id}
        self._finish(run, status, error=error or None)
        return run

    def _finish(self, run: JobRun, status: JobRunStatus, error: Optional[Dict[str, Any]] = None) -> None:
        run.status = status
        run.error = error
        run.finished_at = _now()
        if run.manifest is not None:
            add_event(
                run.manifest,
                event_type="job_run_finished",
                ts=run.finished_at,
                payload={"status": status.value, "error": error},
            )
            if self.manifest_dir is not None:
                save_manifest(run.manifest, self.manifest_dir / "jobs" / f"{run.run_id}.json")

        for listener in list(self._listeners):
            listener(run)


def job_script_source(job_command: str) -> str:
    """Conteúdo do script publicado em `scripts/` para um job."""
    return (
        f'"""Script do job `{job_command}` (publicado no provisionamento)."""\n'
        "import sys\n"
        "\n"
        "from sensor_dataflow.cli import main\n"
        "\n"
        'if __name__ == "__main__":\n'
        f'    sys.exit(main(["{job_command}", *sys.argv[1:]]))\n'
    )


__all__ = [
    "CompletionListener",
    "JobDefinition",
    "JobRun",
    "JobRunStatus",
    "JobRunner",
    "REQUIRED_ARGUMENTS",
    "job_script_source",
    "normalize_arguments",
]
