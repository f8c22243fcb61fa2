"""
Sensor DataFlow: Canonical Exceptions (v1)

Este módulo define exceções tipadas internas do Sensor DataFlow.

Objetivo:
- Permitir que Steps, JobRunner e Orchestrator levantem exceções semânticas tipadas
- Facilitar o mapeamento determinístico para DataflowErrorPayload
- Evitar ValueError/RuntimeError genéricos nas fronteiras críticas
  (dados malformados, I/O do store, treino, hosting)

Regras:
- Exceções carregam apenas dados estruturados (serializáveis) em `details`.
- Nenhuma exceção implica retry automático: toda recuperação é externa.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class DataflowException(Exception):
    """Base class para exceções internas do Sensor DataFlow.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Não embedar stack trace em payloads de erro
    - Mensagem deve ser curta e humana
    """

    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    hint: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover
        return self.message


# ---------------------------------------------------------------------------
# Transformações batch / Object store
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MalformedRecordError(DataflowException):
    """Registro bruto inválido com política `fail` ativa."""


@dataclass(frozen=True)
class StoreReadError(DataflowException):
    """Falha de leitura de objeto no store."""


@dataclass(frozen=True)
class StoreWriteError(DataflowException):
    """Falha de escrita de objeto no store."""


@dataclass(frozen=True)
class JobStoppedError(DataflowException):
    """Job run interrompido (stop ou timeout) antes de gravar sua saída."""


# ---------------------------------------------------------------------------
# Treino / Hosting
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrainingFailedError(DataflowException):
    """Training job terminou em estado diferente de Completed."""


@dataclass(frozen=True)
class TrainingTimeoutError(TrainingFailedError):
    """Training job excedeu o tempo máximo de execução e foi interrompido."""


@dataclass(frozen=True)
class ModelRegistrationError(DataflowException):
    """Falha ao registrar o modelo a partir do artefato treinado."""


@dataclass(frozen=True)
class HostingConfigurationError(DataflowException):
    """Falha ao criar a configuração de hosting."""


@dataclass(frozen=True)
class EndpointDeploymentError(DataflowException):
    """Falha ao criar ou atualizar o endpoint."""


# ---------------------------------------------------------------------------
# Engine / Configuração
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EngineConfigurationError(DataflowException):
    """Configuração inválida ou inconsistente para execução."""

