# src/sensor_dataflow/core/engine/__init__.py
"""
Engine dos jobs batch do Sensor DataFlow.

Componentes principais:
    - planner → ordenação topológica determinística e validações estruturais
    - engine  → execução coordenada de Steps com política fail-fast

Invariantes:
    - Steps só são executados após suas dependências
    - Cada Step é executado no máximo uma vez por job run
    - A primeira falha (fail-fast) interrompe o job antes de qualquer escrita posterior
"""

from .engine import Engine, RunResult
from .planner import CycleDetectedError, UnknownDependencyError, plan_execution

__all__ = [
    "Engine",
    "RunResult",
    "plan_execution",
    "CycleDetectedError",
    "UnknownDependencyError",
]
