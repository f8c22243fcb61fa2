# tests/core/config/test_settings.py
"""
Testes dos settings tipados do pipeline (`load_settings`).

Os testes asseguram que:
- os defaults empacotados produzem um `PipelineSettings` válido
- valores nulos nos defaults recebem os defaults documentados
  (target = avg_<primeira medida>, hosting = menor tipo de instância)
- violações de domínio são rejeitadas com `InvalidSettingsError`
- o hash da configuração efetiva acompanha o settings

Decisões arquiteturais:
    - Componentes recebem `PipelineSettings`, nunca o dict cru
    - Validação ocorre uma única vez, na carga
"""

import pytest

try:
    from sensor_dataflow.core.config import InvalidSettingsError, compute_config_hash
    from sensor_dataflow.core.config.settings import HOSTING_INSTANCE_TYPES
except Exception as e:  # noqa: BLE001
    InvalidSettingsError = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if InvalidSettingsError is None:
        pytest.fail(f"Missing settings. Import error: {_IMPORT_ERR}")


def test_packaged_defaults_produce_valid_settings(make_settings):
    _require_imports()
    s = make_settings()

    assert s.store.bucket == "sensor-dataflow"
    assert s.store.prefixes() == ["raw/", "clean/", "aggregated/", "scripts/", "model-artifacts/"]
    assert s.schema.measurements == ("value",)
    assert s.clean_job.malformed_policy == "drop"
    assert s.aggregate_job.window_seconds == 300
    assert s.clean_job.name != s.aggregate_job.name
    assert s.training.instance_count == 1
    assert s.training.target == "avg_value"
    assert s.hosting.instance_type == HOSTING_INSTANCE_TYPES[0]
    assert s.fail_fast is True
    assert s.config_hash == compute_config_hash(s.raw)


def test_target_follows_first_measurement(make_settings, short_schema_overrides):
    _require_imports()
    s = make_settings(short_schema_overrides)
    assert s.schema.timestamp_field == "t"
    assert s.training.target == "avg_v"


def test_prefixes_get_trailing_slash(make_settings):
    _require_imports()
    s = make_settings({"store": {"prefixes": {"raw": "landing"}}})
    assert s.store.raw_prefix == "landing/"


@pytest.mark.parametrize(
    "overrides",
    [
        {"training": {"instance_count": 2}},
        {"jobs": {"aggregate": {"window_seconds": 0}}},
        {"jobs": {"aggregate": {"window_seconds": 2.5}}},
        {"jobs": {"clean": {"malformed_policy": "repair"}}},
        {"jobs": {"clean": {"engine": "fastparquet"}}},
        {"jobs": {"aggregate": {"name": "sensor-clean"}}},
        {"training": {"instance_type": "ml.p3.16xlarge"}},
        {"hosting": {"instance_type": "ml.g4dn.xlarge"}},
        {"schema": {"measurements": []}},
        {"orchestrator": {"max_concurrent_executions": 0}},
    ],
)
def test_invalid_settings_are_rejected(make_settings, overrides):
    _require_imports()
    with pytest.raises(InvalidSettingsError):
        make_settings(overrides)
