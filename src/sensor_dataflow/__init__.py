# src/sensor_dataflow/__init__.py
"""
Sensor DataFlow: pipeline batch de telemetria de sensores com deploy de modelo.

Fluxo de dados:
    raw/ ──clean job──► clean/ ──aggregate job──► aggregated/ ──► workflow de ML
                                                                (train → register →
                                                                 configure → deploy)

Arquitetura em alto nível:
    - core.config       → carregamento, merge, hashing e settings tipados
    - core.pipeline     → protocolos, contexto de execução e registro de Steps
    - core.engine       → planejamento (DAG) e execução dos Steps de um job
    - core.traceability → Manifest e Event Log para auditoria
    - storage           → object store local com notificação de objetos criados
    - jobs              → jobs batch clean e aggregate
    - runtime           → executores locais de jobs, treino e hosting
    - orchestration     → trigger entre jobs, event bus e workflow de ML
    - stack / cli       → provisionamento e linha de comando

Limites explícitos:
    - Runtimes são locais e de processo único (sem IAM, sem ETL distribuído,
      sem stack real de serving)
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
