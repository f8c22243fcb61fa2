# src/sensor_dataflow/core/engine/engine.py
"""
Engine de execução dos Steps de um job batch.

O Engine planeja (via `plan_execution`) e executa os Steps de um job na
ordem topológica, sempre em modo fail-fast por padrão: a primeira falha
interrompe o job e nada mais é escrito no store. Isso é o que garante que
uma saída parcial nunca seja promovida.

Regras:
- O Engine **não** muta instâncias de StepResult in-place; enriquecimentos
  (warnings do RunContext, metadados de payload) criam nova instância.
- Exceções levantadas por Steps são convertidas em DataflowErrorPayload e
  gravadas em `StepResult.payload["error"]`.
- Quando um Manifest é fornecido, o Engine registra explicitamente
  `step_started` / `step_finished` / `step_failed` para cada Step.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import hashlib
import json

from sensor_dataflow.core.pipeline.context import RunContext
from sensor_dataflow.core.pipeline.step import Step
from sensor_dataflow.core.pipeline.types import StepKind, StepResult, StepStatus
from sensor_dataflow.core.errors import error_from_exception
from sensor_dataflow.core.exceptions import EngineConfigurationError
from sensor_dataflow.core.traceability.manifest import (
    RunManifest,
    step_failed,
    step_finished,
    step_started,
)

from .planner import plan_execution


@dataclass(frozen=True)
class RunResult:
    """Resultado agregado da execução dos Steps de um job (RunResult v1)."""

    steps: Dict[str, StepResult] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return bool(self.steps) and all(r.status == StepStatus.SUCCESS for r in self.steps.values())

    def first_failure(self) -> Optional[StepResult]:
        for r in self.steps.values():
            if r.status == StepStatus.FAILED:
                return r
        return None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Engine:
    """Engine canônico dos jobs batch (planner + executor)."""

    def __init__(
        self,
        *,
        steps: Sequence[Step],
        ctx: RunContext,
        manifest: Optional[RunManifest] = None,
    ):
        self.steps: List[Step] = list(steps)
        self.ctx: RunContext = ctx
        self.manifest = manifest

    def _fail_fast(self) -> bool:
        engine_cfg = (self.ctx.config or {}).get("engine", {}) or {}
        return bool(engine_cfg.get("fail_fast", True))

    # ------------------------------------------------------------------
    # Rastreamento: helpers para enriquecer StepResult
    # ------------------------------------------------------------------
    def _ctx_warnings_for(self, step_id: str) -> List[str]:
        warnings_map = getattr(self.ctx, "warnings", {}) or {}
        return list(warnings_map.get(step_id, []) or [])

    def _payload_meta(self, payload: Any) -> Dict[str, Any]:
        """Metadados leves para rastreabilidade do payload (sem truncar)."""
        raw = json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str).encode("utf-8")
        return {
            "payload_bytes": int(len(raw)),
            "payload_sha256": hashlib.sha256(raw).hexdigest(),
        }

    def _enrich_step_result(self, *, step_id: str, step: Step, result: StepResult) -> StepResult:
        """Retorna uma NOVA instância StepResult enriquecida (StepResult é frozen)."""
        desired_kind = getattr(result, "kind", None) or getattr(step, "kind", StepKind.LOAD) or StepKind.LOAD

        merged_w: List[str] = []
        seen = set()
        for msg in list(result.warnings or []) + self._ctx_warnings_for(step_id):
            if msg not in seen:
                merged_w.append(msg)
                seen.add(msg)

        payload = dict(result.payload or {})
        artifacts = dict(result.artifacts or {})
        artifacts.setdefault("payload_meta", self._payload_meta(payload))

        return replace(
            result,
            step_id=step_id,
            kind=desired_kind,
            warnings=merged_w,
            payload=payload,
            artifacts=artifacts,
        )

    def _mk_result(
        self,
        *,
        step_id: str,
        step: Step,
        status: StepStatus,
        summary: str,
        payload: Dict[str, Any] | None = None,
    ) -> StepResult:
        kind = getattr(step, "kind", StepKind.LOAD) or StepKind.LOAD
        r = StepResult(
            step_id=step_id,
            kind=kind,
            status=status,
            summary=summary,
            payload=dict(payload or {}),
        )
        return self._enrich_step_result(step_id=step_id, step=step, result=r)

    # ------------------------------------------------------------------
    # Manifest
    # ------------------------------------------------------------------
    def _record_started(self, step: Step) -> None:
        if self.manifest is None:
            return
        kind = getattr(step, "kind", None)
        step_started(
            self.manifest,
            step_id=step.id,
            kind=kind.value if isinstance(kind, StepKind) else str(kind),
            ts=_now(),
        )

    def _record_result(self, result: StepResult) -> None:
        if self.manifest is None:
            return
        if result.status == StepStatus.FAILED:
            error = (result.payload or {}).get("error") or {}
            step_failed(
                self.manifest,
                step_id=result.step_id,
                ts=_now(),
                error=str(error.get("message") or result.summary),
            )
            return
        step_finished(
            self.manifest,
            step_id=result.step_id,
            ts=_now(),
            result={
                "status": result.status.value,
                "summary": result.summary,
                "metrics": result.metrics,
                "warnings": result.warnings,
                "artifacts": result.artifacts,
            },
        )

    def run(self) -> RunResult:
        ordered = plan_execution(self.steps)

        results: Dict[str, StepResult] = {}
        for step in ordered:
            sid = step.id

            deps = list(getattr(step, "depends_on", []) or [])
            if any(results.get(d) and results[d].status != StepStatus.SUCCESS for d in deps):
                results[sid] = self._mk_result(
                    step_id=sid,
                    step=step,
                    status=StepStatus.SKIPPED,
                    summary="skipped due to unsuccessful dependency",
                )
                self._record_result(results[sid])
                continue

            self._record_started(step)
            try:
                step_result = step.run(self.ctx)
                if not isinstance(step_result, StepResult):
                    raise EngineConfigurationError(
                        message="Step retornou tipo inválido",
                        details={"step_id": sid, "expected": "StepResult"},
                        hint="Ajuste o Step para retornar StepResult",
                    )
                enriched = self._enrich_step_result(step_id=sid, step=step, result=step_result)

            except Exception as e:
                error = error_from_exception(e)
                enriched = self._mk_result(
                    step_id=sid,
                    step=step,
                    status=StepStatus.FAILED,
                    summary=error.message,
                    payload={"error": error.to_dict()},
                )

            results[sid] = enriched
            self._record_result(enriched)

            if enriched.status == StepStatus.FAILED and self._fail_fast():
                break

        return RunResult(steps=results)
