# src/sensor_dataflow/core/traceability/manifest.py
"""
Manifest v1: rastreabilidade de job runs e execuções de workflow.

Este módulo define a estrutura e as operações canônicas do Manifest, o
registro forense de uma execução no Sensor DataFlow. O mesmo formato é
usado para:
    - job runs batch (clean / aggregate): um registro por Step
    - execuções do workflow (train → register → configure → deploy):
      um registro por estado

O Manifest consolida, de forma determinística e auditável:
    - metadados da execução (`run`)
    - entradas de identidade (`inputs`: hash de config, job, argumentos)
    - estado incremental dos Steps/estados
    - Event Log ordenado de eventos explícitos

Princípios fundamentais:
    - Nenhum evento é emitido implicitamente
    - Toda mutação ocorre por chamadas explícitas da API
    - A ordem do Event Log reflete a ordem real de execução
    - O Manifest é serializável e reconstruível (round-trip)

Decisões arquiteturais:
    - UTC é o timezone canônico para todos os timestamps
    - O formato de persistência é JSON determinístico (`sort_keys=True`)

Limites explícitos:
    - Não executa jobs nem workflows
    - Não decide políticas de execução (fail-fast, retry)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union, Tuple


def _ensure_tzaware_utc(dt: datetime) -> datetime:
    """
    Normaliza um timestamp para timezone-aware em UTC.

    Timestamps timezone-naive são assumidos como UTC; os demais são
    convertidos para UTC preservando o instante.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return _ensure_tzaware_utc(dt).isoformat()


def _ms_between(start: datetime, end: datetime) -> int:
    """Duração em milissegundos entre dois timestamps (nunca negativa)."""
    s = _ensure_tzaware_utc(start)
    e = _ensure_tzaware_utc(end)
    return max(0, int((e - s).total_seconds() * 1000))


@dataclass
class RunManifest:
    """
    Manifest v1: registro forense de uma execução.

    Campos principais:
        - run: metadados da execução (run_id, kind, started_at, dataflow_version)
        - inputs: identidade das entradas (config_hash + extras)
        - steps: estado incremental de cada Step/estado, indexado por id
        - events: Event Log ordenado de eventos explícitos

    Invariantes:
        - `steps` é sempre um dicionário indexado por step_id
        - `events` é sempre uma lista ordenada
        - A estrutura completa é serializável em JSON
    """

    run: Dict[str, Any]
    inputs: Dict[str, Any]
    steps: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Cópia serializável e independente do estado interno."""
        return {
            "run": dict(self.run),
            "inputs": dict(self.inputs),
            "steps": {k: dict(v) for k, v in self.steps.items()},
            "events": [dict(e) for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunManifest":
        """Reconstrói um Manifest a partir de `to_dict` (campos ausentes viram vazios)."""
        return cls(
            run=dict(data.get("run", {})),
            inputs=dict(data.get("inputs", {})),
            steps={k: dict(v) for k, v in (data.get("steps", {}) or {}).items()},
            events=[dict(e) for e in (data.get("events", []) or [])],
        )

    def event_types(self) -> List[str]:
        return [e.get("event_type") for e in self.events]


def create_manifest(
    *,
    run_id: str,
    started_at: datetime,
    dataflow_version: str,
    config_hash: str,
    kind: str = "job",
    extra_inputs: Optional[Dict[str, Any]] = None,
) -> RunManifest:
    """
    Cria o Manifest inicial de uma execução (Manifest v1).

    ⚠️ Importante: esta função **não emite eventos implicitamente**.
    O Event Log inicia vazio e só é preenchido por chamadas explícitas
    a `add_event`, `step_started`, `step_finished` ou `step_failed`.

    Args:
        run_id (str): Identificador do job run ou da execução do workflow.
        started_at (datetime): Timestamp de início.
        dataflow_version (str): Versão do Sensor DataFlow utilizada.
        config_hash (str): Hash canônico da configuração resolvida.
        kind (str): "job" para jobs batch, "workflow" para execuções do orquestrador.
        extra_inputs (Optional[Dict[str, Any]]): Entradas adicionais
            (ex.: job_name, argumentos, id do sinal de início).

    Returns:
        RunManifest: Manifest inicializado com `steps` e `events` vazios.
    """
    started_at = _ensure_tzaware_utc(started_at)

    inputs: Dict[str, Any] = {"config_hash": config_hash}
    if extra_inputs:
        inputs.update(extra_inputs)

    return RunManifest(
        run={
            "run_id": run_id,
            "kind": kind,
            "started_at": _iso(started_at),
            "dataflow_version": dataflow_version,
        },
        inputs=inputs,
        steps={},
        events=[],
    )


def _get_manifest(manifest: Union[RunManifest, Dict[str, Any]]) -> Tuple[RunManifest, bool]:
    """Normaliza a entrada para `RunManifest`; o bool indica se veio de dict."""
    if isinstance(manifest, RunManifest):
        return manifest, False
    return RunManifest.from_dict(manifest), True


def _sync_back(manifest: Union[RunManifest, Dict[str, Any]], m: RunManifest, is_dict: bool) -> None:
    if is_dict:
        manifest.clear()  # type: ignore[union-attr]
        manifest.update(m.to_dict())  # type: ignore[union-attr]


def add_event(
    manifest: Union[RunManifest, Dict[str, Any]],
    *,
    event_type: str,
    ts: datetime,
    step_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Adiciona um evento explícito ao Event Log do Manifest.

    Cada chamada adiciona exatamente um evento; eventos não são
    reordenados nem deduplicados. O Manifest pode ser fornecido como
    instância ou como dict (o dict é atualizado in-place).
    """
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)

    ev: Dict[str, Any] = {"event_type": event_type, "timestamp": _iso(ts)}
    if step_id is not None:
        ev["step_id"] = step_id
    if payload is not None:
        ev["payload"] = payload

    m.events.append(ev)
    _sync_back(manifest, m, is_dict)


def step_started(
    manifest: Union[RunManifest, Dict[str, Any]],
    *,
    step_id: str,
    kind: str,
    ts: datetime,
) -> None:
    """
    Registra o início de um Step (ou estado do workflow) no Manifest.

    O registro é criado sob demanda com status `"running"` e um evento
    `step_started` é adicionado ao Event Log.
    """
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)

    m.steps.setdefault(step_id, {})
    m.steps[step_id].update(
        {
            "step_id": step_id,
            "kind": kind,
            "status": "running",
            "started_at": _iso(ts),
        }
    )

    add_event(m, event_type="step_started", ts=ts, step_id=step_id, payload={"kind": kind})
    _sync_back(manifest, m, is_dict)


def step_finished(
    manifest: Union[RunManifest, Dict[str, Any]],
    *,
    step_id: str,
    ts: datetime,
    result: Dict[str, Any],
) -> None:
    """
    Registra a conclusão de um Step no Manifest.

    Atualiza status, `finished_at`, `duration_ms` (a partir de
    `started_at`, quando presente), summary, métricas, warnings e
    artefatos; adiciona o evento `step_finished`.

    Args:
        result (Dict[str, Any]): status, summary, metrics, warnings, artifacts.
    """
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)

    s = m.steps.setdefault(step_id, {"step_id": step_id})
    started_iso = s.get("started_at")
    started_dt = datetime.fromisoformat(started_iso) if started_iso else ts

    status = result.get("status", "success")
    s.update(
        {
            "status": status,
            "finished_at": _iso(ts),
            "duration_ms": _ms_between(started_dt, ts),
            "summary": result.get("summary"),
            "metrics": result.get("metrics", {}) or {},
            "warnings": result.get("warnings", []) or [],
            "artifacts": result.get("artifacts", {}) or {},
        }
    )

    add_event(
        m,
        event_type="step_finished",
        ts=ts,
        step_id=step_id,
        payload={"status": status, "duration_ms": s.get("duration_ms", 0)},
    )
    _sync_back(manifest, m, is_dict)


def step_failed(
    manifest: Union[RunManifest, Dict[str, Any]],
    *,
    step_id: str,
    ts: datetime,
    error: str,
) -> None:
    """
    Registra a falha de um Step no Manifest.

    Marca o Step como `"failed"`, grava a mensagem de erro e adiciona o
    evento `step_failed`. Não há lógica de retry: a recuperação é externa.
    """
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)

    s = m.steps.setdefault(step_id, {"step_id": step_id})
    s.update(
        {
            "status": "failed",
            "finished_at": _iso(ts),
            "error": error,
        }
    )

    add_event(m, event_type="step_failed", ts=ts, step_id=step_id, payload={"error": error})
    _sync_back(manifest, m, is_dict)


def save_manifest(manifest: Union[RunManifest, Dict[str, Any]], path: Path) -> None:
    """
    Persiste um Manifest em disco no formato JSON determinístico.

    Diretórios intermediários são criados automaticamente.

    Raises:
        OSError: Em caso de falha ao criar diretórios ou escrever o arquivo.
        TypeError: Se o conteúdo não for serializável em JSON.
    """
    data = manifest.to_dict() if isinstance(manifest, RunManifest) else manifest
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True), encoding="utf-8")


def load_manifest(path: Path) -> RunManifest:
    """Carrega um Manifest persistido (round-trip de `save_manifest`)."""
    data = json.loads(path.read_text(encoding="utf-8"))
    return RunManifest.from_dict(data)
