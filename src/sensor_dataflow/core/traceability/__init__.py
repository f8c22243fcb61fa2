# src/sensor_dataflow/core/traceability/__init__.py
"""
Pacote de rastreabilidade do Sensor DataFlow: Manifest v1.

API pública exposta:
    - RunManifest       → estrutura canônica do Manifest
    - create_manifest   → criação explícita do Manifest
    - add_event         → registro explícito de eventos no Event Log
    - step_started      → marca início de execução de um Step/estado
    - step_finished     → registra conclusão de um Step/estado
    - step_failed       → registra falha de um Step/estado
    - save_manifest     → persistência do Manifest em JSON
    - load_manifest     → restauração determinística do Manifest

Decisões arquiteturais:
    - Nenhum evento é emitido implicitamente
    - A ordem do Event Log reflete a ordem de chamada
"""

from .manifest import (
    RunManifest,
    create_manifest,
    add_event,
    step_started,
    step_finished,
    step_failed,
    save_manifest,
    load_manifest,
)

__all__ = [
    "RunManifest",
    "create_manifest",
    "add_event",
    "step_started",
    "step_finished",
    "step_failed",
    "save_manifest",
    "load_manifest",
]
