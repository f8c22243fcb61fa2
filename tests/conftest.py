# tests/conftest.py
"""
Fixtures compartilhados para testes do Sensor DataFlow.

Este módulo define fixtures reutilizáveis que fornecem:
- configurações mínimas e determinísticas (core)
- configuração efetiva completa (defaults empacotados + overrides)
- object store isolado em `tmp_path`
- contexto de execução controlado (RunContext) para Steps de jobs
- Steps dummy para testes estruturais do Engine

Decisões arquiteturais:
    - Fixtures são mantidas simples e explícitas
    - Steps dummy utilizam duck typing em vez de herança
    - Todo estado em filesystem vive sob `tmp_path`

Limites explícitos:
    - Não executa pipeline real (isso é responsabilidade dos testes e2e)
    - Não contém lógica de domínio
"""

import json
from datetime import datetime, timezone

import pytest


# =====================================================
# Core: config + RunContext
# =====================================================

@pytest.fixture
def dummy_config() -> dict:
    """
    Configuração mínima já resolvida para testes do core.

    Contém apenas a chave efetivamente lida pelo Engine (`engine.fail_fast`).
    """
    return {
        "engine": {"fail_fast": True},
    }


@pytest.fixture
def dummy_ctx(dummy_config):
    """RunContext determinístico (run_id e created_at fixos, sem store)."""
    from sensor_dataflow.core.pipeline.context import RunContext

    return RunContext(
        run_id="run-test-001",
        created_at=datetime(2026, 1, 16, 0, 0, 0, tzinfo=timezone.utc),
        config=dummy_config,
        meta={"source": "pytest"},
    )


@pytest.fixture
def DummyStep():
    """
    Fixture factory que fornece uma implementação mínima e duck-typed de um Step.

    A classe retornada:
    - expõe os atributos obrigatórios (`id`, `kind`, `depends_on`)
    - implementa `run(ctx)` registrando um artefato `<id>.ok`
    - sempre retorna StepResult com status SUCCESS

    Usado por:
        - Testes de planner (ordenação, dependências)
        - Testes de engine (execução, skip, fail-fast)
    """
    from sensor_dataflow.core.pipeline.types import StepKind, StepResult, StepStatus

    class _DummyStep:
        def __init__(self, step_id: str = "clean.load_raw", kind: StepKind = StepKind.LOAD, depends_on=None):
            self.id = step_id
            self.kind = kind
            self.depends_on = depends_on or []

        def run(self, ctx):
            ctx.set_artifact(f"{self.id}.ok", True)
            return StepResult(
                step_id=self.id,
                kind=self.kind,
                status=StepStatus.SUCCESS,
                summary="dummy ok",
                metrics={},
                warnings=[],
                artifacts={"ok": f"{self.id}.ok"},
                payload={"note": "dummy"},
            )

    return _DummyStep


# =====================================================
# Configuração efetiva
# =====================================================

@pytest.fixture
def make_config():
    """Factory: configuração efetiva (defaults empacotados + overrides em memória)."""
    from sensor_dataflow.core.config.loader import load_config

    def _make(overrides=None) -> dict:
        return load_config(overrides=overrides or {})

    return _make


@pytest.fixture
def make_settings():
    """Factory: `PipelineSettings` validado a partir de overrides."""
    from sensor_dataflow.core.config.settings import load_settings

    def _make(overrides=None):
        return load_settings(overrides=overrides or {})

    return _make


@pytest.fixture
def short_schema_overrides() -> dict:
    """Schema com nomes curtos (t / dev / v), usado no cenário de janelas."""
    return {"schema": {"timestamp_field": "t", "key_field": "dev", "measurements": ["v"]}}


# =====================================================
# Object store + contexto de job
# =====================================================

@pytest.fixture
def store(tmp_path):
    from sensor_dataflow.storage.object_store import LocalObjectStore

    return LocalObjectStore(root=tmp_path / "store", bucket="sensor-dataflow")


@pytest.fixture
def write_jsonl():
    """Factory: grava registros como um objeto JSON-lines no store."""

    def _write(store, key, records):
        body = "".join(json.dumps(r) + "\n" for r in records)
        return store.put_text(key, body)

    return _write


@pytest.fixture
def make_job_ctx(store, make_config):
    """Factory: RunContext de job com store real e argumentos explícitos."""
    from sensor_dataflow.core.pipeline.context import RunContext

    def _make(*, input_path="raw/", output_path="clean/", engine="pyarrow", config=None, meta=None):
        return RunContext(
            run_id="jr-test",
            created_at=datetime(2026, 1, 16, tzinfo=timezone.utc),
            config=config if config is not None else make_config(),
            store=store,
            arguments={"input_path": input_path, "output_path": output_path, "engine": engine},
            meta=meta or {},
        )

    return _make


@pytest.fixture
def seed_aggregates(make_config):
    """Factory: grava um `aggregates.csv` sintético (várias janelas e devices) sob `prefix`."""
    import pandas as pd

    from sensor_dataflow.jobs.aggregate import aggregate_frame
    from sensor_dataflow.jobs.common import schema_from_config

    def _seed(store, prefix="aggregated/", n=60):
        schema = schema_from_config(make_config())
        clean = pd.DataFrame(
            {
                "timestamp": [float(i * 37) for i in range(n)],
                "device_id": [f"d{i % 3}" for i in range(n)],
                "value": [float((i * 7) % 11) + (i % 3) for i in range(n)],
            }
        )
        out = aggregate_frame(clean, schema, 300)
        key = prefix + "aggregates.csv"
        store.put_text(key, out.to_csv(index=False))
        return key

    return _seed
