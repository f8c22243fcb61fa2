"""
Sensor DataFlow: Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros do Sensor DataFlow.
Não existe um canal unificado de erro na aplicação: falhas aparecem
apenas no status do job run ou da execução do workflow. O payload aqui
definido é o que fica gravado nesses status (e no Manifest), devendo ser:

- explícito
- serializável
- rastreável
- acionável pelo operador (que é quem re-dispara a execução)
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from .exceptions import DataflowException


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DataflowErrorPayload:
    """
    Payload canônico de erro do Sensor DataFlow.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao operador (onde corrigir / o que re-executar)
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

# Transformações / Store
TRANSFORM_MALFORMED_RECORD = "TRANSFORM_MALFORMED_RECORD"
STORE_READ_ERROR = "STORE_READ_ERROR"
STORE_WRITE_ERROR = "STORE_WRITE_ERROR"
JOB_STOPPED = "JOB_STOPPED"
JOB_TIMEOUT = "JOB_TIMEOUT"

# Workflow (treino / hosting)
TRAINING_FAILED = "TRAINING_FAILED"
TRAINING_TIMEOUT = "TRAINING_TIMEOUT"
MODEL_REGISTRATION_FAILED = "MODEL_REGISTRATION_FAILED"
HOSTING_CONFIGURATION_FAILED = "HOSTING_CONFIGURATION_FAILED"
ENDPOINT_DEPLOYMENT_FAILED = "ENDPOINT_DEPLOYMENT_FAILED"

# Engine / Execução
ENGINE_EXECUTION_ERROR = "ENGINE_EXECUTION_ERROR"
ENGINE_CONFIGURATION_ERROR = "ENGINE_CONFIGURATION_ERROR"


_TYPE_BY_EXCEPTION = {
    "MalformedRecordError": TRANSFORM_MALFORMED_RECORD,
    "StoreReadError": STORE_READ_ERROR,
    "StoreWriteError": STORE_WRITE_ERROR,
    "JobStoppedError": JOB_STOPPED,
    "TrainingFailedError": TRAINING_FAILED,
    "TrainingTimeoutError": TRAINING_TIMEOUT,
    "ModelRegistrationError": MODEL_REGISTRATION_FAILED,
    "HostingConfigurationError": HOSTING_CONFIGURATION_FAILED,
    "EndpointDeploymentError": ENDPOINT_DEPLOYMENT_FAILED,
    "EngineConfigurationError": ENGINE_CONFIGURATION_ERROR,
}


# ---------------------------------------------------------------------------
# Mapeamento exceção -> payload
# ---------------------------------------------------------------------------

def error_from_exception(exc: BaseException) -> DataflowErrorPayload:
    """Converte qualquer exceção em DataflowErrorPayload (sem stack trace).

    Regras:
    - DataflowException: usa o código do catálogo + details/hint carregados.
    - Outras exceções: ENGINE_EXECUTION_ERROR com a classe da exceção em details.
    """
    if isinstance(exc, DataflowException):
        return DataflowErrorPayload(
            type=_TYPE_BY_EXCEPTION.get(exc.__class__.__name__, ENGINE_EXECUTION_ERROR),
            message=exc.message or "Erro de execução",
            details=dict(exc.details or {}),
            hint=exc.hint,
        )

    return DataflowErrorPayload(
        type=ENGINE_EXECUTION_ERROR,
        message=str(exc) or "Erro inesperado durante execução",
        details={"exception_class": exc.__class__.__name__},
        hint="Verifique os eventos do run e a configuração do pipeline",
    )


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def malformed_record(
    *,
    index: int,
    reasons: Dict[str, str],
    source_key: Optional[str] = None,
    hint: str = "Corrija o registro na origem ou use malformed_policy=drop para descartá-lo.",
) -> DataflowErrorPayload:
    return DataflowErrorPayload(
        type=TRANSFORM_MALFORMED_RECORD,
        message="Registro bruto inválido",
        details={
            "index": index,
            "reasons": dict(reasons),
            "source_key": source_key,
        },
        hint=hint,
    )


def training_timeout(
    *,
    training_job_name: str,
    max_runtime_seconds: float,
    hint: str = "Aumente training.max_runtime_seconds ou reduza o volume agregado e re-dispare a execução.",
) -> DataflowErrorPayload:
    return DataflowErrorPayload(
        type=TRAINING_TIMEOUT,
        message="Training job excedeu o tempo máximo de execução",
        details={
            "training_job_name": training_job_name,
            "max_runtime_seconds": max_runtime_seconds,
        },
        hint=hint,
    )


def engine_configuration_error(
    *,
    message: str = "Configuração inválida para execução do job",
    details: Optional[Dict[str, Any]] = None,
    hint: str = "Revise a configuração do job/steps antes de reexecutar.",
) -> DataflowErrorPayload:
    return DataflowErrorPayload(
        type=ENGINE_CONFIGURATION_ERROR,
        message=message,
        details=details or {},
        hint=hint,
    )


def job_timeout(
    *,
    job_name: str,
    timeout_seconds: float,
    hint: str = "Re-execute o job manualmente após revisar o volume de dados.",
) -> DataflowErrorPayload:
    return DataflowErrorPayload(
        type=JOB_TIMEOUT,
        message="Job run exceeded its timeout",
        details={
            "job_name": job_name,
            "timeout_seconds": timeout_seconds,
        },
        hint=hint,
    )
