# src/sensor_dataflow/core/pipeline/step.py
"""
Contrato canônico de Step dos jobs batch.

Um Step é a menor unidade executável de um job (clean ou aggregate):
lê do RunContext, produz um StepResult e publica artefatos de volta no
RunContext para os Steps seguintes.

Princípios fundamentais:
    - Steps não conhecem o Engine nem o JobRunner
    - Steps não controlam ordem de execução (declaram `depends_on`)
    - Comunicação entre Steps é mediada exclusivamente pelo RunContext
    - Conformidade é garantida por duck typing (@runtime_checkable)
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable, List

from .context import RunContext
from .types import StepKind, StepResult


@runtime_checkable
class Step(Protocol):
    """
    Contrato mínimo de um Step executável pelo Engine.

    Atributos obrigatórios:
        - id: identificador único e estável do Step (ex.: "clean.validate")
        - kind: classificação semântica (`StepKind`)
        - depends_on: lista de `step_id` dos quais depende

    Invariantes:
        - `run` é executado no máximo uma vez por job run
        - O retorno de `run` é sempre um `StepResult`

    Limites explícitos:
        - Não define retry
        - Não registra eventos no Manifest diretamente
    """
    id: str
    kind: StepKind
    depends_on: List[str]

    def run(self, ctx: RunContext) -> StepResult:
        """Executa a etapa uma única vez usando exclusivamente o RunContext."""
        ...
