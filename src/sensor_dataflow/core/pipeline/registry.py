# src/sensor_dataflow/core/pipeline/registry.py
"""
Registro estrutural de Steps de um job.

O `StepRegistry` valida a integridade estrutural dos Steps de um job
antes de qualquer planejamento: identificadores válidos, sem duplicatas,
ordem de declaração preservada. Os builders de job (`build_clean_steps`,
`build_aggregate_steps`) passam por ele antes de entregar os Steps ao
Engine.

Limites explícitos:
    - Não planeja execução (não é DAG planner)
    - Não executa Steps
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .step import Step


class DuplicateStepIdError(ValueError):
    """
    Dois Steps do mesmo job declararam o mesmo `step.id`.

    A duplicidade é tratada como erro fatal de definição do job e é
    detectada no momento do registro, antes de qualquer execução.
    """


@dataclass
class StepRegistry:
    """
    Registro canônico de Steps para validação estrutural pré-execução.

    Invariantes:
        - Cada `step.id` é único no registry
        - `list()` reflete exatamente a ordem de registro
    """

    _steps: Dict[str, Step] = field(default_factory=dict, init=False, repr=False)
    _order: List[str] = field(default_factory=list, init=False, repr=False)

    @classmethod
    def of(cls, steps: Iterable[Step]) -> "StepRegistry":
        registry = cls()
        for step in steps:
            registry.add(step)
        return registry

    def add(self, step: Step) -> None:
        step_id = getattr(step, "id", None)
        if not isinstance(step_id, str) or not step_id.strip():
            raise ValueError("step.id must be a non-empty string")

        if step_id in self._steps:
            raise DuplicateStepIdError(f"Duplicate step id: {step_id}")

        self._steps[step_id] = step
        self._order.append(step_id)

    def get(self, step_id: str) -> Step:
        return self._steps[step_id]

    def list(self) -> List[Step]:
        return [self._steps[sid] for sid in self._order]
