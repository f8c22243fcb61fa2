# tests/core/traceability/test_manifest.py
"""
Testes do Manifest v1 (rastreabilidade de job runs e execuções do workflow).

Os testes asseguram que:
- `create_manifest` não emite eventos implicitamente
- eventos são adicionados na ordem de chamada
- step_started / step_finished / step_failed atualizam o estado do Step
- manifests fornecidos como dict são atualizados in-place
- save/load é determinístico

Limites explícitos:
    - Não valida integração com Engine (ver tests/core/engine)
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

try:
    from sensor_dataflow.core.traceability import (
        RunManifest,
        add_event,
        create_manifest,
        load_manifest,
        save_manifest,
        step_failed,
        step_finished,
        step_started,
    )
except Exception as e:  # noqa: BLE001
    create_manifest = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


T0 = datetime(2026, 1, 16, 12, 0, 0, tzinfo=timezone.utc)


def _require_imports():
    if create_manifest is None:
        pytest.fail(f"Missing manifest API. Import error: {_IMPORT_ERR}")


def _manifest():
    return create_manifest(
        run_id="wf-000000000001",
        started_at=T0,
        dataflow_version="0.1.0",
        config_hash="h" * 64,
        kind="workflow",
        extra_inputs={"signal_id": "sig_1"},
    )


def test_create_manifest_starts_without_events():
    _require_imports()
    m = _manifest()

    assert m.run == {
        "run_id": "wf-000000000001",
        "kind": "workflow",
        "started_at": "2026-01-16T12:00:00+00:00",
        "dataflow_version": "0.1.0",
    }
    assert m.inputs == {"config_hash": "h" * 64, "signal_id": "sig_1"}
    assert m.steps == {}
    assert m.events == []


def test_step_lifecycle_updates_state_and_event_log():
    _require_imports()
    m = _manifest()

    step_started(m, step_id="TRAIN", kind="workflow_state", ts=T0)
    step_finished(
        m,
        step_id="TRAIN",
        ts=T0 + timedelta(seconds=2),
        result={"status": "success", "summary": "Completed", "metrics": {"rows": 4}},
    )
    step_started(m, step_id="REGISTER_MODEL", kind="workflow_state", ts=T0 + timedelta(seconds=2))
    step_failed(m, step_id="REGISTER_MODEL", ts=T0 + timedelta(seconds=3), error="artifact missing")

    assert m.event_types() == ["step_started", "step_finished", "step_started", "step_failed"]
    assert m.steps["TRAIN"]["status"] == "success"
    assert m.steps["TRAIN"]["duration_ms"] == 2000
    assert m.steps["TRAIN"]["metrics"] == {"rows": 4}
    assert m.steps["REGISTER_MODEL"]["status"] == "failed"
    assert m.steps["REGISTER_MODEL"]["error"] == "artifact missing"


def test_dict_manifest_is_updated_in_place():
    _require_imports()
    data = _manifest().to_dict()

    add_event(data, event_type="job_run_started", ts=T0, payload={"job_name": "sensor-clean"})

    assert data["events"] == [
        {
            "event_type": "job_run_started",
            "timestamp": "2026-01-16T12:00:00+00:00",
            "payload": {"job_name": "sensor-clean"},
        }
    ]


def test_naive_timestamps_are_assumed_utc():
    _require_imports()
    m = _manifest()
    add_event(m, event_type="x", ts=datetime(2026, 1, 16))
    assert m.events[0]["timestamp"] == "2026-01-16T00:00:00+00:00"


def test_save_and_load_are_deterministic(tmp_path):
    _require_imports()
    m = _manifest()
    step_started(m, step_id="TRAIN", kind="workflow_state", ts=T0)
    path = tmp_path / "manifests" / "workflows" / "wf.json"

    save_manifest(m, path)
    first = path.read_text(encoding="utf-8")
    restored = load_manifest(path)
    save_manifest(restored, path)

    assert isinstance(restored, RunManifest)
    assert restored.to_dict() == m.to_dict()
    assert path.read_text(encoding="utf-8") == first
    assert json.loads(first)["run"]["run_id"] == "wf-000000000001"
