# tests/core/test_error_payloads.py
"""
Testes do catálogo canônico de erros (DataflowErrorPayload).

Os testes asseguram que:
- exceções internas são mapeadas para códigos estáveis
- exceções externas viram ENGINE_EXECUTION_ERROR sem stack trace
- os helpers de fábrica produzem details estruturados e um hint
"""

import pytest

try:
    from sensor_dataflow.core import errors
    from sensor_dataflow.core.exceptions import (
        JobStoppedError,
        MalformedRecordError,
        TrainingTimeoutError,
    )
except Exception as e:  # noqa: BLE001
    errors = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if errors is None:
        pytest.fail(f"Missing error catalog. Import error: {_IMPORT_ERR}")


@pytest.mark.parametrize(
    "exc, code",
    [
        (lambda: MalformedRecordError(message="bad", details={"index": 0}), "TRANSFORM_MALFORMED_RECORD"),
        (lambda: JobStoppedError(message="stopped"), "JOB_STOPPED"),
        (lambda: TrainingTimeoutError(message="slow"), "TRAINING_TIMEOUT"),
    ],
)
def test_internal_exceptions_map_to_catalog(exc, code):
    _require_imports()
    payload = errors.error_from_exception(exc())
    assert payload.type == code


def test_external_exception_becomes_engine_execution_error():
    _require_imports()
    payload = errors.error_from_exception(KeyError("avg_value"))

    d = payload.to_dict()
    assert d["type"] == "ENGINE_EXECUTION_ERROR"
    assert d["details"] == {"exception_class": "KeyError"}
    assert "Traceback" not in d["message"]
    assert d["hint"]


def test_factories_carry_structured_details():
    _require_imports()
    m = errors.malformed_record(index=3, reasons={"value": "not a number"}, source_key="raw/a.jsonl")
    t = errors.training_timeout(training_job_name="wf-1-train", max_runtime_seconds=0.5)
    j = errors.job_timeout(job_name="sensor-clean", timeout_seconds=1)

    assert m.details == {"index": 3, "reasons": {"value": "not a number"}, "source_key": "raw/a.jsonl"}
    assert t.type == "TRAINING_TIMEOUT"
    assert t.details["max_runtime_seconds"] == 0.5
    assert j.type == "JOB_TIMEOUT"
    assert j.details == {"job_name": "sensor-clean", "timeout_seconds": 1}
    assert all(p.hint for p in (m, t, j))
