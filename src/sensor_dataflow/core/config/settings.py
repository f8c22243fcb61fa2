# src/sensor_dataflow/core/config/settings.py
"""
Settings tipados do pipeline.

`load_settings` transforma a configuração resolvida (dict) em um
`PipelineSettings` imutável, validando chaves obrigatórias e domínios de
valores. Todos os componentes (store, jobs, trigger, orquestrador,
runtimes) recebem `PipelineSettings`, nunca o dict cru; o dict original e
seu hash continuam disponíveis para rastreabilidade.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .errors import InvalidSettingsError
from .hashing import compute_config_hash
from .loader import load_config


MALFORMED_POLICIES = ("drop", "fail")
PARQUET_ENGINES = ("pyarrow", "auto")

# Ordenados do menor para o maior; o primeiro é o default de hosting.
HOSTING_INSTANCE_TYPES = (
    "ml.t2.medium",
    "ml.m5.large",
    "ml.m5.xlarge",
    "ml.m5.2xlarge",
)
TRAINING_INSTANCE_TYPES = (
    "ml.m5.large",
    "ml.m5.xlarge",
    "ml.m5.2xlarge",
)


def _section(config: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = config.get(key)
    if not isinstance(value, dict):
        raise InvalidSettingsError(f"Seção obrigatória ausente ou inválida: {key}")
    return value


def _require_str(section: Dict[str, Any], key: str, where: str) -> str:
    value = section.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidSettingsError(f"Chave obrigatória ausente: {where}.{key}")
    return value.strip()


def _require_number(section: Dict[str, Any], key: str, where: str) -> float:
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise InvalidSettingsError(f"{where}.{key} deve ser um número positivo")
    return value


def _require_choice(value: str, choices: Tuple[str, ...], where: str) -> str:
    if value not in choices:
        raise InvalidSettingsError(f"{where} deve ser um de {list(choices)}, recebido: {value!r}")
    return value


def _prefix(value: str) -> str:
    return value if value.endswith("/") else value + "/"


@dataclass(frozen=True)
class StoreSettings:
    bucket: str
    raw_prefix: str
    clean_prefix: str
    aggregated_prefix: str
    scripts_prefix: str
    model_artifacts_prefix: str

    def prefixes(self) -> List[str]:
        return [
            self.raw_prefix,
            self.clean_prefix,
            self.aggregated_prefix,
            self.scripts_prefix,
            self.model_artifacts_prefix,
        ]


@dataclass(frozen=True)
class SchemaSettings:
    timestamp_field: str
    key_field: str
    measurements: Tuple[str, ...]


@dataclass(frozen=True)
class JobSettings:
    name: str
    script: str
    engine: str
    timeout_seconds: float


@dataclass(frozen=True)
class CleanJobSettings(JobSettings):
    malformed_policy: str = "drop"


@dataclass(frozen=True)
class AggregateJobSettings(JobSettings):
    window_seconds: int = 300


@dataclass(frozen=True)
class TrainingSettings:
    image: str
    instance_type: str
    instance_count: int
    max_runtime_seconds: float
    target: str
    hyperparameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HostingSettings:
    instance_type: str
    endpoint_name: str


@dataclass(frozen=True)
class PipelineSettings:
    """Configuração validada e imutável de todo o pipeline."""

    store: StoreSettings
    schema: SchemaSettings
    clean_job: CleanJobSettings
    aggregate_job: AggregateJobSettings
    training: TrainingSettings
    hosting: HostingSettings
    fail_fast: bool
    max_concurrent_executions: int
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
    config_hash: str = ""

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "PipelineSettings":
        store_cfg = _section(config, "store")
        prefixes = store_cfg.get("prefixes")
        if not isinstance(prefixes, dict):
            raise InvalidSettingsError("Seção obrigatória ausente ou inválida: store.prefixes")
        store = StoreSettings(
            bucket=_require_str(store_cfg, "bucket", "store"),
            raw_prefix=_prefix(_require_str(prefixes, "raw", "store.prefixes")),
            clean_prefix=_prefix(_require_str(prefixes, "clean", "store.prefixes")),
            aggregated_prefix=_prefix(_require_str(prefixes, "aggregated", "store.prefixes")),
            scripts_prefix=_prefix(_require_str(prefixes, "scripts", "store.prefixes")),
            model_artifacts_prefix=_prefix(_require_str(prefixes, "model_artifacts", "store.prefixes")),
        )

        schema_cfg = _section(config, "schema")
        measurements = schema_cfg.get("measurements")
        if (
            not isinstance(measurements, list)
            or not measurements
            or not all(isinstance(m, str) and m.strip() for m in measurements)
        ):
            raise InvalidSettingsError("schema.measurements deve ser uma lista não vazia de nomes")
        schema = SchemaSettings(
            timestamp_field=_require_str(schema_cfg, "timestamp_field", "schema"),
            key_field=_require_str(schema_cfg, "key_field", "schema"),
            measurements=tuple(m.strip() for m in measurements),
        )

        jobs_cfg = _section(config, "jobs")
        clean_cfg = _section(jobs_cfg, "clean")
        agg_cfg = _section(jobs_cfg, "aggregate")
        clean_job = CleanJobSettings(
            name=_require_str(clean_cfg, "name", "jobs.clean"),
            script=_require_str(clean_cfg, "script", "jobs.clean"),
            engine=_require_choice(_require_str(clean_cfg, "engine", "jobs.clean"), PARQUET_ENGINES, "jobs.clean.engine"),
            timeout_seconds=_require_number(clean_cfg, "timeout_seconds", "jobs.clean"),
            malformed_policy=_require_choice(
                _require_str(clean_cfg, "malformed_policy", "jobs.clean"),
                MALFORMED_POLICIES,
                "jobs.clean.malformed_policy",
            ),
        )
        window = agg_cfg.get("window_seconds")
        if isinstance(window, bool) or not isinstance(window, int) or window <= 0:
            raise InvalidSettingsError("jobs.aggregate.window_seconds deve ser um inteiro positivo")
        aggregate_job = AggregateJobSettings(
            name=_require_str(agg_cfg, "name", "jobs.aggregate"),
            script=_require_str(agg_cfg, "script", "jobs.aggregate"),
            engine=_require_choice(_require_str(agg_cfg, "engine", "jobs.aggregate"), PARQUET_ENGINES, "jobs.aggregate.engine"),
            timeout_seconds=_require_number(agg_cfg, "timeout_seconds", "jobs.aggregate"),
            window_seconds=window,
        )
        if clean_job.name == aggregate_job.name:
            raise InvalidSettingsError("jobs.clean.name e jobs.aggregate.name devem ser distintos")

        training_cfg = _section(config, "training")
        instance_count = training_cfg.get("instance_count")
        if instance_count != 1:
            raise InvalidSettingsError("training.instance_count deve ser 1 (uma instância de tamanho fixo)")
        target = training_cfg.get("target") or f"avg_{schema.measurements[0]}"
        hyper = training_cfg.get("hyperparameters") or {}
        if not isinstance(hyper, dict):
            raise InvalidSettingsError("training.hyperparameters deve ser um mapeamento")
        training = TrainingSettings(
            image=_require_str(training_cfg, "image", "training"),
            instance_type=_require_choice(
                _require_str(training_cfg, "instance_type", "training"),
                TRAINING_INSTANCE_TYPES,
                "training.instance_type",
            ),
            instance_count=1,
            max_runtime_seconds=_require_number(training_cfg, "max_runtime_seconds", "training"),
            target=str(target),
            hyperparameters=dict(hyper),
        )

        hosting_cfg = _section(config, "hosting")
        hosting_type: Optional[str] = hosting_cfg.get("instance_type") or HOSTING_INSTANCE_TYPES[0]
        hosting = HostingSettings(
            instance_type=_require_choice(str(hosting_type), HOSTING_INSTANCE_TYPES, "hosting.instance_type"),
            endpoint_name=_require_str(hosting_cfg, "endpoint_name", "hosting"),
        )

        engine_cfg = config.get("engine") or {}
        orch_cfg = config.get("orchestrator") or {}
        max_conc = orch_cfg.get("max_concurrent_executions", 4)
        if isinstance(max_conc, bool) or not isinstance(max_conc, int) or max_conc < 1:
            raise InvalidSettingsError("orchestrator.max_concurrent_executions deve ser um inteiro >= 1")

        return cls(
            store=store,
            schema=schema,
            clean_job=clean_job,
            aggregate_job=aggregate_job,
            training=training,
            hosting=hosting,
            fail_fast=bool(engine_cfg.get("fail_fast", True)),
            max_concurrent_executions=max_conc,
            raw=config,
            config_hash=compute_config_hash(config),
        )


def load_settings(
    *,
    defaults_path: Optional[str] = None,
    local_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> PipelineSettings:
    """Carrega a configuração (defaults + local + overrides) e valida em `PipelineSettings`."""
    config = load_config(defaults_path=defaults_path, local_path=local_path, overrides=overrides)
    return PipelineSettings.from_config(config)
