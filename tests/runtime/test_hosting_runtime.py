# tests/runtime/test_hosting_runtime.py
"""
Testes do runtime de hosting local.

Os testes asseguram que:
- nomes de Model e EndpointConfig são únicos
- o artefato do modelo precisa existir no store
- tipos de instância fora do catálogo são rejeitados
- endpoints são upsert por nome (versão incrementa, última escrita vence)
- o endpoint serve predições do modelo registrado
"""

import pandas as pd
import pytest

try:
    from sensor_dataflow.core.exceptions import (
        EndpointDeploymentError,
        HostingConfigurationError,
        ModelRegistrationError,
    )
    from sensor_dataflow.runtime.artifacts import ModelArtifactStore
    from sensor_dataflow.runtime.hosting import DEFAULT_VARIANT_NAME, IN_SERVICE, HostingRuntime
    from sensor_dataflow.runtime.training import DEFAULT_IMAGE, TrainingJobRequest, TrainingRuntime
except Exception as e:  # noqa: BLE001
    HostingRuntime = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if HostingRuntime is None:
        pytest.fail(f"Missing HostingRuntime. Import error: {_IMPORT_ERR}")


@pytest.fixture
def trained(store, seed_aggregates):
    """Treina dois modelos e devolve (hosting, [artifact_a, artifact_b])."""
    seed_aggregates(store)
    artifacts = ModelArtifactStore(store=store)
    training = TrainingRuntime(store=store, artifacts=artifacts)
    keys = []
    for name in ("job-a", "job-b"):
        job = training.create_training_job(
            TrainingJobRequest(
                training_job_name=name,
                image=DEFAULT_IMAGE,
                instance_type="ml.m5.large",
                max_runtime_seconds=60,
                training_data_prefix="aggregated/",
                target="avg_value",
                hyperparameters={"num_round": 5},
            )
        )
        keys.append(job.model_artifact)
    return HostingRuntime(store=store, artifacts=artifacts), keys


def test_model_requires_existing_artifact_and_unique_name(trained):
    _require_imports()
    hosting, keys = trained

    hosting.create_model(name="m-a", image=DEFAULT_IMAGE, model_artifact=keys[0])

    with pytest.raises(ModelRegistrationError):
        hosting.create_model(name="m-a", image=DEFAULT_IMAGE, model_artifact=keys[1])
    with pytest.raises(ModelRegistrationError):
        hosting.create_model(name="m-x", image=DEFAULT_IMAGE, model_artifact="model-artifacts/none/model.joblib")


def test_endpoint_config_validation(trained):
    _require_imports()
    hosting, keys = trained
    hosting.create_model(name="m-a", image=DEFAULT_IMAGE, model_artifact=keys[0])

    config = hosting.create_endpoint_config(name="c-a", model_name="m-a", instance_type="ml.t2.medium")
    assert config.variants[0].variant_name == DEFAULT_VARIANT_NAME
    assert config.variants[0].initial_instance_count == 1

    with pytest.raises(HostingConfigurationError):
        hosting.create_endpoint_config(name="c-a", model_name="m-a", instance_type="ml.t2.medium")
    with pytest.raises(HostingConfigurationError):
        hosting.create_endpoint_config(name="c-b", model_name="m-missing", instance_type="ml.t2.medium")
    with pytest.raises(HostingConfigurationError):
        hosting.create_endpoint_config(name="c-c", model_name="m-a", instance_type="ml.p3.2xlarge")


def test_endpoint_upsert_is_last_write_wins(trained):
    _require_imports()
    hosting, keys = trained
    for suffix, key in zip("ab", keys):
        hosting.create_model(name=f"m-{suffix}", image=DEFAULT_IMAGE, model_artifact=key)
        hosting.create_endpoint_config(name=f"c-{suffix}", model_name=f"m-{suffix}", instance_type="ml.t2.medium")

    first = hosting.create_or_update_endpoint(name="sensor-forecast-endpoint", config_name="c-a", updated_by="wf-a")
    second = hosting.create_or_update_endpoint(name="sensor-forecast-endpoint", config_name="c-b", updated_by="wf-b")

    assert first.version == 1
    assert second.version == 2
    assert second.created_at == first.created_at
    current = hosting.describe_endpoint("sensor-forecast-endpoint")
    assert current.config_name == "c-b"
    assert current.status == IN_SERVICE
    assert current.updated_by == "wf-b"
    assert hosting.list_endpoints() == ["sensor-forecast-endpoint"]

    with pytest.raises(EndpointDeploymentError):
        hosting.create_or_update_endpoint(name="sensor-forecast-endpoint", config_name="c-missing")


def test_invoke_endpoint_returns_predictions(store, trained):
    _require_imports()
    hosting, keys = trained
    hosting.create_model(name="m-a", image=DEFAULT_IMAGE, model_artifact=keys[0])
    hosting.create_endpoint_config(name="c-a", model_name="m-a", instance_type="ml.t2.medium")
    hosting.create_or_update_endpoint(name="ep", config_name="c-a")

    rows = pd.read_csv(store.root / "aggregated" / "aggregates.csv").head(3).to_dict("records")
    preds = hosting.invoke_endpoint("ep", rows)

    assert len(preds) == 3
    assert all(isinstance(p, float) for p in preds)
    with pytest.raises(ValueError):
        hosting.invoke_endpoint("ep", [{"window_start": 0}])

    assert hosting.delete_endpoint("ep") is True
    with pytest.raises(KeyError):
        hosting.invoke_endpoint("ep", rows)
