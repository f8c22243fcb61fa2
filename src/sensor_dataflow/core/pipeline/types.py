# src/sensor_dataflow/core/pipeline/types.py
"""
Tipos canônicos dos jobs batch do Sensor DataFlow.

Este módulo define as estruturas e enums que padronizam a comunicação
entre Steps, Engine e a camada de rastreabilidade (Manifest) dentro de
um job batch (clean ou aggregate).

Componentes principais:
    - StepStatus → enum de estados finais (SUCCESS, SKIPPED, FAILED)
    - StepKind   → enum de classificação semântica de Steps
    - StepResult → estrutura imutável de resultado de execução

Invariantes:
    - Enums possuem valores textuais canônicos (persistidos em Manifest)
    - StepResult é imutável
    - Tipos não dependem de engine, store ou runtime

Limites explícitos:
    - Não executa Steps
    - Não decide políticas de execução
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class StepKind(str, Enum):
    """
    Classificação semântica de um Step de job batch.

    Tipos definidos:
        - LOAD: leitura de objetos do store
        - VALIDATE: validação e coerção de registros
        - AGGREGATE: sumarização por janela temporal
        - EXPORT: materialização de saída no store

    O Engine não utiliza `StepKind` para decidir execução; o valor é
    puramente informativo e aparece no Manifest.
    """
    LOAD = "load"
    VALIDATE = "validate"
    AGGREGATE = "aggregate"
    EXPORT = "export"


class StepStatus(str, Enum):
    """
    Estados finais possíveis da execução de um Step.

    Estados definidos:
        - SUCCESS: execução concluída com sucesso
        - SKIPPED: execução pulada (dependência sem sucesso); nunca conta como sucesso
        - FAILED: execução interrompida por erro

    Estados transitórios (ex.: running) não pertencem a este enum; eles
    existem apenas no Manifest.
    """
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    """
    Resultado imutável da execução de um Step.

    Campos:
        - step_id: identificador único do Step
        - kind: tipo semântico do Step
        - status: estado final da execução
        - summary: resumo textual curto
        - metrics: contagens e métricas numéricas (ex.: rows_in, dropped)
        - warnings: avisos não fatais
        - artifacts: referências a objetos produzidos (ex.: chaves no store)
        - payload: dados adicionais (ex.: erro estruturado)

    Uma instância nunca é alterada após criada; enriquecimentos do
    Engine produzem uma nova instância via `dataclasses.replace`.
    """
    step_id: str
    kind: StepKind
    status: StepStatus
    summary: str
    metrics: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    artifacts: Dict[str, Any] = field(default_factory=dict)
    payload: Dict[str, Any] = field(default_factory=dict)
