# src/sensor_dataflow/core/pipeline/__init__.py
"""
# Pipeline Core: Sensor DataFlow

Contratos canônicos dos jobs batch (clean e aggregate).

Um job é modelado como um **DAG explícito de Steps**, onde:
- cada Step declara identidade, tipo semântico e dependências
- a execução é coordenada exclusivamente pelo Engine
- o estado compartilhado é mediado pelo `RunContext`

## Componentes

- **types**: `StepStatus`, `StepKind`, `StepResult`
- **step**: `Step` (Protocol)
- **context**: `RunContext`
- **registry**: `StepRegistry`

## Limites Explícitos

- Não planeja nem executa (isso é responsabilidade do Engine)
- Não contém a lógica de orquestração entre jobs
"""

from .context import RunContext
from .registry import DuplicateStepIdError, StepRegistry
from .step import Step
from .types import StepKind, StepResult, StepStatus

__all__ = [
    "RunContext",
    "Step",
    "StepKind",
    "StepResult",
    "StepStatus",
    "StepRegistry",
    "DuplicateStepIdError",
]
