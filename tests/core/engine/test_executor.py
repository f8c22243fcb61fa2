# tests/core/engine/test_executor.py
"""
Testes de execução do Engine de jobs batch.

Os testes asseguram que:
- todos os Steps de um DAG válido são executados em ordem topológica
- a primeira falha interrompe o job quando `fail_fast` está ativo
- um Step SKIPPED nunca conta como sucesso do job
- Steps cuja dependência não teve sucesso são SKIPPED quando fail_fast está desligado
- exceções viram payload de erro estruturado (sem stack trace)
- o Manifest recebe step_started / step_finished / step_failed

Decisões arquiteturais:
    - O Engine não tenta retry nem execução parcial após falha fatal
    - Steps com retorno inválido são tratados como erro de configuração

Limites explícitos:
    - Não valida Steps reais de clean ou aggregate (ver tests/jobs)
"""

from datetime import datetime, timezone

import pytest

try:
    from sensor_dataflow.core.engine.engine import Engine
    from sensor_dataflow.core.pipeline.types import StepKind, StepStatus
    from sensor_dataflow.core.traceability.manifest import create_manifest
    from sensor_dataflow.core.exceptions import StoreReadError
except Exception as e:  # noqa: BLE001
    Engine = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if Engine is None:
        pytest.fail(f"Missing Engine. Import error: {_IMPORT_ERR}")


class FailingStep:
    """Step duck-typed que sempre lança uma exceção do store."""

    kind = None

    def __init__(self, step_id="clean.validate", depends_on=None):
        self.id = step_id
        self.depends_on = depends_on or []

    def run(self, ctx):
        raise StoreReadError(message="object vanished", details={"key": "raw/a.jsonl"})


class BadReturnStep:
    id = "bad"
    kind = None
    depends_on = []

    def run(self, ctx):
        return {"status": "success"}


def test_happy_path_runs_every_step(dummy_ctx, DummyStep):
    _require_imports()
    steps = [
        DummyStep("clean.write", StepKind.EXPORT, depends_on=["clean.validate"]),
        DummyStep("clean.load_raw", StepKind.LOAD),
        DummyStep("clean.validate", StepKind.VALIDATE, depends_on=["clean.load_raw"]),
    ]

    result = Engine(steps=steps, ctx=dummy_ctx).run()

    assert list(result.steps) == ["clean.load_raw", "clean.validate", "clean.write"]
    assert result.succeeded
    assert result.first_failure() is None
    for sid in result.steps:
        assert dummy_ctx.get_artifact(f"{sid}.ok") is True
        assert "payload_meta" in result.steps[sid].artifacts


def test_fail_fast_stops_execution(dummy_ctx, DummyStep):
    _require_imports()
    dummy_ctx.config["engine"] = {"fail_fast": True}
    steps = [
        DummyStep("clean.load_raw", StepKind.LOAD),
        FailingStep("clean.validate", depends_on=["clean.load_raw"]),
        DummyStep("clean.write", StepKind.EXPORT, depends_on=["clean.validate"]),
    ]

    result = Engine(steps=steps, ctx=dummy_ctx).run()

    failed = result.steps["clean.validate"]
    assert failed.status == StepStatus.FAILED
    assert "clean.write" not in result.steps
    assert not dummy_ctx.has_artifact("clean.write.ok")
    assert not result.succeeded
    assert result.first_failure() is failed

    error = failed.payload["error"]
    assert error["type"] == "STORE_READ_ERROR"
    assert error["details"] == {"key": "raw/a.jsonl"}


def test_failed_dependency_skips_when_fail_fast_disabled(dummy_ctx, DummyStep):
    _require_imports()
    dummy_ctx.config["engine"] = {"fail_fast": False}
    steps = [
        FailingStep("a"),
        DummyStep("b", StepKind.EXPORT, depends_on=["a"]),
        DummyStep("c", StepKind.LOAD),
    ]

    result = Engine(steps=steps, ctx=dummy_ctx).run()

    assert result.steps["a"].status == StepStatus.FAILED
    assert result.steps["b"].status == StepStatus.SKIPPED
    assert result.steps["b"].summary == "skipped due to unsuccessful dependency"
    assert result.steps["c"].status == StepStatus.SUCCESS


def test_skipped_step_never_counts_as_success(dummy_ctx, DummyStep):
    _require_imports()
    from sensor_dataflow.core.pipeline.types import StepResult

    class SkippingStep:
        id = "clean.validate"
        kind = StepKind.VALIDATE
        depends_on = ["clean.load_raw"]

        def run(self, ctx):
            return StepResult(step_id=self.id, kind=self.kind, status=StepStatus.SKIPPED, summary="nothing to do")

    steps = [
        DummyStep("clean.load_raw", StepKind.LOAD),
        SkippingStep(),
        DummyStep("clean.write", StepKind.EXPORT, depends_on=["clean.validate"]),
    ]

    result = Engine(steps=steps, ctx=dummy_ctx).run()

    assert result.steps["clean.validate"].status == StepStatus.SKIPPED
    assert result.steps["clean.write"].status == StepStatus.SKIPPED
    assert not dummy_ctx.has_artifact("clean.write.ok")
    assert not result.succeeded
    assert result.first_failure() is None


def test_steps_config_section_does_not_disable_steps(dummy_ctx, DummyStep):
    _require_imports()
    dummy_ctx.config["steps"] = {"clean.load_raw": {"enabled": False}}

    result = Engine(steps=[DummyStep("clean.load_raw")], ctx=dummy_ctx).run()

    assert result.steps["clean.load_raw"].status == StepStatus.SUCCESS
    assert dummy_ctx.has_artifact("clean.load_raw.ok")


def test_invalid_return_type_is_a_configuration_error(dummy_ctx):
    _require_imports()
    result = Engine(steps=[BadReturnStep()], ctx=dummy_ctx).run()

    error = result.steps["bad"].payload["error"]
    assert result.steps["bad"].status == StepStatus.FAILED
    assert error["type"] == "ENGINE_CONFIGURATION_ERROR"
    assert error["details"]["step_id"] == "bad"


def test_context_warnings_are_merged_into_result(dummy_ctx):
    _require_imports()
    from sensor_dataflow.core.pipeline.types import StepResult

    class WarningStep:
        id = "clean.load_raw"
        kind = StepKind.LOAD
        depends_on = []

        def run(self, ctx):
            ctx.add_warning(step_id=self.id, message="skipped raw/readme.txt")
            return StepResult(step_id=self.id, kind=self.kind, status=StepStatus.SUCCESS, summary="ok")

    result = Engine(steps=[WarningStep()], ctx=dummy_ctx).run()
    assert result.steps["clean.load_raw"].warnings == ["skipped raw/readme.txt"]


def test_manifest_records_step_events(dummy_ctx, DummyStep):
    _require_imports()
    manifest = create_manifest(
        run_id=dummy_ctx.run_id,
        started_at=datetime(2026, 1, 16, tzinfo=timezone.utc),
        dataflow_version="0.1.0",
        config_hash="abc",
    )
    steps = [DummyStep("a", StepKind.LOAD), FailingStep("b", depends_on=["a"])]

    Engine(steps=steps, ctx=dummy_ctx, manifest=manifest).run()

    assert manifest.event_types() == ["step_started", "step_finished", "step_started", "step_failed"]
    assert manifest.steps["a"]["status"] == "success"
    assert manifest.steps["b"]["status"] == "failed"
    assert manifest.steps["b"]["error"] == "object vanished"
