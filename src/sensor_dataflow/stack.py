"""
Provisionamento do pipeline completo.

`PipelineStack.provision` monta e conecta todos os componentes:

    object store ──(ObjectCreated)──► event bus ──► change notifier ──► orchestrator
         ▲                                                                  │
         │ clean job ──(SUCCEEDED)──► chain trigger ──► aggregate job       ▼
         └─────────────────────────────────────── training / hosting runtimes

A ingestão de dados brutos é externa ao pipeline; `ingest_raw` existe
apenas como atalho para operadores e testes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from sensor_dataflow import __version__
from sensor_dataflow.core.config.settings import PipelineSettings
from sensor_dataflow.jobs.aggregate import build_aggregate_steps
from sensor_dataflow.jobs.clean import build_clean_steps
from sensor_dataflow.orchestration.chain import ChainTrigger
from sensor_dataflow.orchestration.events import ChangeNotifier, EventBus
from sensor_dataflow.orchestration.workflow import Orchestrator, WorkflowExecution, WorkflowTemplate
from sensor_dataflow.runtime.artifacts import ModelArtifactStore
from sensor_dataflow.runtime.hosting import HostingRuntime
from sensor_dataflow.runtime.jobs import JobDefinition, JobRun, JobRunner, job_script_source
from sensor_dataflow.runtime.training import AlgorithmRegistry, TrainingRuntime
from sensor_dataflow.storage.layout import StoreLayout
from sensor_dataflow.storage.object_store import LocalObjectStore, normalize_key


MANIFESTS_DIR = "_manifests"


def job_definitions(settings: PipelineSettings, layout: StoreLayout) -> List[JobDefinition]:
    clean = settings.clean_job
    aggregate = settings.aggregate_job
    return [
        JobDefinition(
            name=clean.name,
            entrypoint=build_clean_steps,
            script_key=layout.scripts + clean.script,
            default_arguments={
                "--input_path": layout.raw,
                "--output_path": layout.clean,
                "--engine": clean.engine,
            },
            timeout_seconds=clean.timeout_seconds,
        ),
        JobDefinition(
            name=aggregate.name,
            entrypoint=build_aggregate_steps,
            script_key=layout.scripts + aggregate.script,
            default_arguments={
                "--input_path": layout.clean,
                "--output_path": layout.aggregated,
                "--engine": aggregate.engine,
            },
            timeout_seconds=aggregate.timeout_seconds,
        ),
    ]


def build_job_runner(
    settings: PipelineSettings,
    store: LocalObjectStore,
    *,
    manifest_dir: Optional[Path] = None,
) -> JobRunner:
    """JobRunner com os dois jobs registrados (sem trigger entre eles)."""
    runner = JobRunner(
        store=store,
        config=settings.raw,
        config_hash=settings.config_hash,
        dataflow_version=__version__,
        manifest_dir=manifest_dir,
    )
    for definition in job_definitions(settings, StoreLayout.from_settings(settings.store)):
        runner.register(definition)
    return runner


def describe_outputs(settings: PipelineSettings, store: LocalObjectStore) -> Dict[str, Any]:
    """Saídas do stack: local do store, prefixos de dados e nome do endpoint."""
    layout = StoreLayout.from_settings(settings.store)
    return {
        "bucket": store.bucket,
        "store_uri": store.uri(),
        "raw_prefix": layout.raw,
        "clean_prefix": layout.clean,
        "aggregated_prefix": layout.aggregated,
        "endpoint_name": settings.hosting.endpoint_name,
    }


@dataclass
class PipelineStack:
    settings: PipelineSettings
    store: LocalObjectStore
    layout: StoreLayout
    runner: JobRunner
    chain: ChainTrigger
    bus: EventBus
    notifier: ChangeNotifier
    orchestrator: Orchestrator
    training: TrainingRuntime
    hosting: HostingRuntime

    @classmethod
    def provision(
        cls,
        settings: PipelineSettings,
        root: Union[str, Path],
        *,
        registry: Optional[AlgorithmRegistry] = None,
        asynchronous: bool = True,
    ) -> "PipelineStack":
        """Cria o layout do store, publica os scripts e conecta os componentes.

        Com `asynchronous=False` cada sinal executa o workflow no thread que
        gravou o objeto agregado (útil em testes determinísticos).
        """
        layout = StoreLayout.from_settings(settings.store)
        store = LocalObjectStore(root=root, bucket=settings.store.bucket)
        store.ensure_layout(layout.prefixes())
        manifest_dir = store.root / MANIFESTS_DIR

        runner = build_job_runner(settings, store, manifest_dir=manifest_dir)
        for definition, command in zip(job_definitions(settings, layout), ("clean", "aggregate")):
            store.put_text(definition.script_key, job_script_source(command))

        chain = ChainTrigger(
            runner=runner,
            upstream=settings.clean_job.name,
            downstream=settings.aggregate_job.name,
        ).attach()

        artifacts = ModelArtifactStore(store=store, prefix=layout.model_artifacts)
        training = TrainingRuntime(store=store, artifacts=artifacts, registry=registry)
        hosting = HostingRuntime(store=store, artifacts=artifacts)
        orchestrator = Orchestrator(
            template=WorkflowTemplate.from_settings(settings),
            training=training,
            hosting=hosting,
            config_hash=settings.config_hash,
            dataflow_version=__version__,
            max_workers=settings.max_concurrent_executions,
            manifest_dir=manifest_dir,
        )

        bus = EventBus().attach_to(store)
        notifier = ChangeNotifier(
            bus=bus,
            bucket=settings.store.bucket,
            prefix=layout.aggregated,
            start=orchestrator.start_async if asynchronous else orchestrator.start,
        ).install()

        return cls(
            settings=settings,
            store=store,
            layout=layout,
            runner=runner,
            chain=chain,
            bus=bus,
            notifier=notifier,
            orchestrator=orchestrator,
            training=training,
            hosting=hosting,
        )

    def outputs(self) -> Dict[str, Any]:
        return describe_outputs(self.settings, self.store)

    def ingest_raw(self, name: str, records: Iterable[Dict[str, Any]]) -> str:
        """Grava registros como um objeto JSON-lines sob o prefixo bruto."""
        key = normalize_key(self.layout.raw + name)
        if not key.lower().endswith((".json", ".jsonl", ".ndjson")):
            key += ".jsonl"
        body = "".join(json.dumps(r, ensure_ascii=False, sort_keys=True) + "\n" for r in records)
        self.store.put_text(key, body)
        return key

    def start_pipeline(self) -> JobRun:
        """Inicia o job clean; aggregate e o workflow seguem por eventos."""
        return self.runner.start_job_run(self.settings.clean_job.name)

    def wait_for_executions(self, timeout: Optional[float] = None) -> List[WorkflowExecution]:
        return self.orchestrator.wait_all(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self.orchestrator.shutdown(wait=wait)


__all__ = ["MANIFESTS_DIR", "PipelineStack", "build_job_runner", "describe_outputs", "job_definitions"]
