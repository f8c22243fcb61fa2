# src/sensor_dataflow/core/pipeline/context.py
"""
Contexto de execução compartilhado de um job batch.

Este módulo define o `RunContext`, a estrutura passada a todos os Steps
durante um job run (clean ou aggregate). Ele é o único meio permitido de:
    - troca indireta de informações entre Steps (artifact store em memória)
    - acesso ao object store e aos parâmetros do job
    - registro de logs estruturados de execução
    - coleta de warnings não fatais associados a Steps

Invariantes:
    - Cada job run possui seu próprio RunContext
    - Logs sempre incluem `run_id` e `step_id`
    - Warnings são agrupados por `step_id`

Limites explícitos:
    - Não executa Steps
    - Não persiste artefatos em memória automaticamente
    - Não registra eventos no Manifest
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List
from datetime import timezone


@dataclass
class RunContext:
    """
    Contexto de execução de um job run.

    Campos:
        - run_id: identificador do job run (atribuído pelo JobRunner)
        - created_at: timestamp UTC de criação
        - config: configuração efetiva (dict resolvido via deep-merge)
        - store: object store usado para leitura e escrita
        - arguments: argumentos do job (`input_path`, `output_path`, `engine`)
        - meta: metadados livres (ex.: job_name)

    Decisões arquiteturais:
        - Steps interagem apenas via RunContext
        - Artefatos em memória são indexados por chave explícita
        - O store é injetado; o contexto não conhece o layout físico
    """
    run_id: str
    created_at: datetime
    config: Dict[str, Any]
    store: Any = None
    arguments: Dict[str, str] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)

    _artifacts: Dict[str, Any] = field(default_factory=dict, init=False, repr=False)
    events: List[Dict[str, Any]] = field(default_factory=list, init=False)
    warnings: Dict[str, List[str]] = field(default_factory=dict, init=False)

    # -----------------------------
    # Artifact store
    # -----------------------------
    def set_artifact(self, key: str, value: Any) -> None:
        self._artifacts[key] = value

    def has_artifact(self, key: str) -> bool:
        return key in self._artifacts

    def get_artifact(self, key: str) -> Any:
        if key not in self._artifacts:
            raise KeyError(key)
        return self._artifacts[key]

    # -----------------------------
    # Job arguments
    # -----------------------------
    def argument(self, name: str) -> str:
        value = self.arguments.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"Missing required job argument: --{name}")
        return value.strip()

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def log(self, *, step_id: str, level: str, message: str, **extra: Any) -> None:
        event = {
            "run_id": self.run_id,
            "step_id": step_id,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        self.events.append(event)

    def add_warning(self, *, step_id: str, message: str) -> None:
        if step_id not in self.warnings:
            self.warnings[step_id] = []
        self.warnings[step_id].append(message)
