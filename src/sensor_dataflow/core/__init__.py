# src/sensor_dataflow/core/__init__.py
"""
Core do Sensor DataFlow.

Reúne as responsabilidades de planejamento, execução e rastreabilidade
usadas pelos jobs batch e pelo workflow de ML:
    - config       → resolução de configuração (merge, hashing, settings tipados)
    - pipeline     → protocolos de Step, contexto de execução e registry
    - engine       → planejamento (DAG) e execução fail-fast dos Steps
    - traceability → Manifest e Event Log
    - errors       → payloads canônicos e exceções tipadas

O core não conhece o object store físico, os runtimes nem a CLI.
"""
