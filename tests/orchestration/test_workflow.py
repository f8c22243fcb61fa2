# tests/orchestration/test_workflow.py
"""
Testes do orquestrador do workflow de ML.

Os testes asseguram que:
- uma execução bem-sucedida visita TRAIN → REGISTER_MODEL →
  CONFIGURE_HOSTING → DEPLOY_ENDPOINT, nesta ordem, e termina SUCCEEDED
- uma falha encerra a execução em FAILED e nenhum estado posterior roda
- artefatos criados antes da falha permanecem (sem rollback)
- o timeout de treino vira TRAINING_TIMEOUT
- execuções concorrentes deixam um único endpoint (o último deploy vence)
- o Manifest de cada execução é persistido

Decisões arquiteturais:
    - Runtimes reais (treino scikit-learn, hosting local) sobre store em `tmp_path`
"""

import json
import time
from dataclasses import replace

import pytest

try:
    from sensor_dataflow.core.exceptions import EndpointDeploymentError, ModelRegistrationError
    from sensor_dataflow.orchestration.events import StartSignal
    from sensor_dataflow.orchestration.workflow import (
        TRANSITIONS,
        Orchestrator,
        WorkflowState,
        WorkflowTemplate,
        next_state,
    )
    from sensor_dataflow.runtime.artifacts import ModelArtifactStore
    from sensor_dataflow.runtime.hosting import HostingRuntime
    from sensor_dataflow.runtime.training import AlgorithmRegistry, AlgorithmSpec, TrainingRuntime
except Exception as e:  # noqa: BLE001
    Orchestrator = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


HAPPY_PATH = [
    WorkflowState.TRAIN,
    WorkflowState.REGISTER_MODEL,
    WorkflowState.CONFIGURE_HOSTING,
    WorkflowState.DEPLOY_ENDPOINT,
]


def _require_imports():
    if Orchestrator is None:
        pytest.fail(f"Missing Orchestrator. Import error: {_IMPORT_ERR}")


class SleepyRegressor:
    def fit(self, X, y):
        time.sleep(1.0)
        return self


def _orchestrator(store, template, tmp_path=None, registry=None, max_workers=4, hosting_cls=None):
    artifacts = ModelArtifactStore(store=store)
    return Orchestrator(
        template=template,
        training=TrainingRuntime(store=store, artifacts=artifacts, registry=registry),
        hosting=(hosting_cls or HostingRuntime)(store=store, artifacts=artifacts),
        config_hash="h",
        dataflow_version="0.1.0",
        max_workers=max_workers,
        manifest_dir=tmp_path,
    )


@pytest.fixture
def template(make_settings):
    return WorkflowTemplate.from_settings(make_settings())


def test_transitions_are_linear_and_explicit():
    _require_imports()
    assert list(TRANSITIONS) == HAPPY_PATH
    assert next_state(WorkflowState.DEPLOY_ENDPOINT, True) == WorkflowState.SUCCEEDED
    assert all(next_state(s, False) == WorkflowState.FAILED for s in HAPPY_PATH)
    with pytest.raises(ValueError):
        next_state(WorkflowState.SUCCEEDED, True)


def test_successful_execution_visits_every_state(store, seed_aggregates, template, tmp_path):
    _require_imports()
    seed_aggregates(store)
    orch = _orchestrator(store, template, tmp_path / "manifests")

    execution = orch.start(StartSignal(source_event_id="evt-1"))

    assert execution.state == WorkflowState.SUCCEEDED
    assert execution.history == HAPPY_PATH
    eid = execution.execution_id
    assert execution.outputs == {
        "training_job_name": f"{eid}-train",
        "model_artifact": f"model-artifacts/{eid}-train/output/model.joblib",
        "model_name": f"{eid}-model",
        "endpoint_config_name": f"{eid}-config",
        "endpoint_name": "sensor-forecast-endpoint",
    }
    endpoint = orch.hosting.describe_endpoint("sensor-forecast-endpoint")
    assert endpoint.config_name == f"{eid}-config"
    assert orch.hosting.describe_endpoint_config(f"{eid}-config").variants[0].instance_type == "ml.t2.medium"

    saved = json.loads((tmp_path / "manifests" / "workflows" / f"{eid}.json").read_text(encoding="utf-8"))
    assert saved["run"]["kind"] == "workflow"
    assert saved["inputs"]["source_event_id"] == "evt-1"
    assert saved["events"][-1]["event_type"] == "workflow_finished"
    assert set(saved["steps"]) == {s.value for s in HAPPY_PATH}


def test_training_failure_stops_the_execution(store, template):
    _require_imports()
    orch = _orchestrator(store, template)

    execution = orch.start(StartSignal(source_event_id="evt-no-data"))

    assert execution.state == WorkflowState.FAILED
    assert execution.history == [WorkflowState.TRAIN]
    assert execution.error["type"] == "TRAINING_FAILED"
    assert execution.error["state"] == "TRAIN"
    assert "No training data" in execution.error["details"]["failure_reason"]
    assert orch.hosting.list_endpoints() == []


def test_hosting_failure_keeps_earlier_artifacts(store, seed_aggregates, template):
    _require_imports()
    seed_aggregates(store)
    orch = _orchestrator(store, replace(template, hosting_instance_type="ml.p3.2xlarge"))

    execution = orch.start(StartSignal(source_event_id="evt-2"))

    assert execution.state == WorkflowState.FAILED
    assert execution.history == HAPPY_PATH[:3]
    assert execution.error["type"] == "HOSTING_CONFIGURATION_FAILED"
    assert store.exists(execution.outputs["model_artifact"])
    assert orch.hosting.describe_model(execution.outputs["model_name"])
    assert orch.hosting.list_endpoints() == []


def test_training_timeout_is_reported(store, seed_aggregates, template):
    _require_imports()
    seed_aggregates(store)
    registry = AlgorithmRegistry.v1()
    registry.register(AlgorithmSpec(image="test/sleepy:1", estimator_cls=SleepyRegressor))
    slow = replace(template, training_image="test/sleepy:1", hyperparameters={}, max_runtime_seconds=0.1)
    orch = _orchestrator(store, slow, registry=registry)

    execution = orch.start(StartSignal(source_event_id="evt-slow"))

    assert execution.state == WorkflowState.FAILED
    assert execution.error["type"] == "TRAINING_TIMEOUT"
    assert execution.error["details"]["max_runtime_seconds"] == 0.1
    assert "model_artifact" not in execution.outputs


def test_concurrent_executions_leave_one_endpoint(store, seed_aggregates, template):
    _require_imports()
    seed_aggregates(store)
    orch = _orchestrator(store, template, max_workers=3)

    try:
        for i in range(3):
            orch.start_async(StartSignal(source_event_id=f"evt-{i}"))
        executions = orch.wait_all(timeout=120)
    finally:
        orch.shutdown()

    assert len(executions) == 3
    assert all(e.succeeded for e in executions)
    assert orch.hosting.list_endpoints() == ["sensor-forecast-endpoint"]

    endpoint = orch.hosting.describe_endpoint("sensor-forecast-endpoint")
    assert endpoint.version == 3
    assert endpoint.updated_by in {e.execution_id for e in executions}
    assert endpoint.config_name == f"{endpoint.updated_by}-config"
    assert orch.get_execution(endpoint.updated_by).succeeded


def test_register_failure_stops_before_hosting(store, seed_aggregates, template):
    _require_imports()

    class RegistryDownHosting(HostingRuntime):
        def create_model(self, *, name, image, model_artifact):
            raise ModelRegistrationError(message="model registry unavailable", details={"model_name": name})

    seed_aggregates(store)
    orch = _orchestrator(store, template, hosting_cls=RegistryDownHosting)

    execution = orch.start(StartSignal(source_event_id="evt-register"))

    assert execution.state == WorkflowState.FAILED
    assert execution.history == HAPPY_PATH[:2]
    assert execution.error["type"] == "MODEL_REGISTRATION_FAILED"
    assert execution.error["state"] == "REGISTER_MODEL"
    assert store.exists(execution.outputs["model_artifact"])
    assert "model_name" not in execution.outputs
    assert "endpoint_config_name" not in execution.outputs
    assert orch.hosting.list_endpoints() == []


def test_deploy_failure_keeps_model_and_config(store, seed_aggregates, template):
    _require_imports()

    class DeployRejectedHosting(HostingRuntime):
        def create_or_update_endpoint(self, *, name, config_name, updated_by=None):
            raise EndpointDeploymentError(message="endpoint update rejected", details={"endpoint_name": name})

    seed_aggregates(store)
    orch = _orchestrator(store, template, hosting_cls=DeployRejectedHosting)

    execution = orch.start(StartSignal(source_event_id="evt-deploy"))

    assert execution.state == WorkflowState.FAILED
    assert execution.history == HAPPY_PATH
    assert execution.error["type"] == "ENDPOINT_DEPLOYMENT_FAILED"
    assert execution.error["state"] == "DEPLOY_ENDPOINT"
    assert store.exists(execution.outputs["model_artifact"])
    assert orch.hosting.describe_model(execution.outputs["model_name"])
    assert orch.hosting.describe_endpoint_config(execution.outputs["endpoint_config_name"])
    assert "endpoint_name" not in execution.outputs
    assert orch.hosting.list_endpoints() == []
