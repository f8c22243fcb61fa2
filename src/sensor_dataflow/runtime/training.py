"""
Runtime de treino local (substitui o serviço gerenciado de treino).

Componentes:
- HyperParameterSpec / AlgorithmSpec / AlgorithmRegistry: catálogo
  determinístico de algoritmos indexado pela referência de imagem de
  treino. Hiperparâmetros são traduzidos explicitamente para parâmetros
  do estimador (sem inferência).
- TrainingRuntime: executa um training job até um estado terminal
  (Completed / Failed / Stopped) sobre os CSV agregados e persiste o
  modelo treinado no object store.

Tradução de hiperparâmetros (imagem default):
- objective=reg:squarederror → loss="squared_error"
- num_round                  → n_estimators
- max_depth                  → max_depth
- eta                        → learning_rate

Limites explícitos (v1):
- uma única instância por job (sem treino distribuído)
- um job que excede `max_runtime_seconds` termina Stopped
  (MaxRuntimeExceeded) e nenhum artefato é gravado
"""

from __future__ import annotations

import io
import math
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple, Type

import pandas as pd
from sklearn.ensemble import GradientBoostingRegressor
from sklearn.metrics import mean_squared_error

from sensor_dataflow.core.config.settings import TRAINING_INSTANCE_TYPES
from sensor_dataflow.storage.object_store import normalize_prefix

from .artifacts import ModelArtifactStore, ModelBundle


DEFAULT_IMAGE = "builtin/gradient-boosting-regressor:1"

ParamDType = Literal["int", "float", "enum"]


@dataclass(frozen=True)
class HyperParameterSpec:
    """Hiperparâmetro aceito por um algoritmo e sua tradução para o estimador."""

    dtype: ParamDType
    estimator_param: str
    min: Optional[float] = None
    max: Optional[float] = None
    choices: Optional[Dict[str, Any]] = None
    description: str = ""

    def translate(self, name: str, raw: Any) -> Any:
        # hiperparâmetros chegam como strings no contrato do serviço de treino
        if self.dtype == "enum":
            key = str(raw)
            if not self.choices or key not in self.choices:
                raise ValueError(f"Unsupported value for hyperparameter {name}: {raw!r}")
            return self.choices[key]

        try:
            value: Any = int(str(raw)) if self.dtype == "int" else float(str(raw))
        except ValueError:
            raise ValueError(f"Hyperparameter {name} must be {self.dtype}, got {raw!r}")
        if self.min is not None and value < self.min:
            raise ValueError(f"Hyperparameter {name} must be >= {self.min}")
        if self.max is not None and value > self.max:
            raise ValueError(f"Hyperparameter {name} must be <= {self.max}")
        return value


@dataclass(frozen=True)
class AlgorithmSpec:
    """Especificação de um algoritmo de treino suportado."""

    image: str
    estimator_cls: Type[Any]
    default_params: Dict[str, Any] = field(default_factory=dict)
    hyperparameters: Dict[str, HyperParameterSpec] = field(default_factory=dict)
    version: str = "v1"

    def estimator_params(self, hyperparameters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params = dict(self.default_params)
        for name, raw in (hyperparameters or {}).items():
            if name not in self.hyperparameters:
                raise ValueError(f"Unsupported hyperparameter for {self.image}: {name}")
            spec = self.hyperparameters[name]
            params[spec.estimator_param] = spec.translate(name, raw)
        return params

    def build(self, hyperparameters: Optional[Dict[str, Any]] = None) -> Any:
        """Instancia o estimador (sem treinar)."""
        return self.estimator_cls(**self.estimator_params(hyperparameters))


class AlgorithmRegistry:
    """Registry determinístico de AlgorithmSpec por referência de imagem."""

    def __init__(self, specs: Optional[Iterable[AlgorithmSpec]] = None):
        self._specs: Dict[str, AlgorithmSpec] = {}
        if specs:
            for s in specs:
                self.register(s)

    @classmethod
    def v1(cls) -> "AlgorithmRegistry":
        return cls(specs=_default_specs_v1())

    def register(self, spec: AlgorithmSpec) -> None:
        if not isinstance(spec, AlgorithmSpec):
            raise TypeError("spec must be an AlgorithmSpec")
        if not isinstance(spec.image, str) or not spec.image.strip():
            raise ValueError("image must be a non-empty string")
        if spec.image in self._specs:
            raise ValueError(f"image already registered: {spec.image}")
        self._specs[spec.image] = spec

    def list_images(self) -> List[str]:
        return sorted(self._specs.keys())

    def get(self, image: str) -> AlgorithmSpec:
        if image not in self._specs:
            raise KeyError(f"unknown training image: {image}")
        return self._specs[image]

    def build(self, image: str, hyperparameters: Optional[Dict[str, Any]] = None) -> Any:
        return self.get(image).build(hyperparameters)


def _default_specs_v1() -> List[AlgorithmSpec]:
    gbr = AlgorithmSpec(
        image=DEFAULT_IMAGE,
        estimator_cls=GradientBoostingRegressor,
        default_params={"random_state": 42},
        hyperparameters={
            "objective": HyperParameterSpec(
                dtype="enum",
                estimator_param="loss",
                choices={
                    "reg:squarederror": "squared_error",
                    "reg:absoluteerror": "absolute_error",
                },
                description="Learning objective",
            ),
            "num_round": HyperParameterSpec(
                dtype="int", estimator_param="n_estimators", min=1, max=10000, description="Boosting rounds"
            ),
            "max_depth": HyperParameterSpec(
                dtype="int", estimator_param="max_depth", min=1, max=64, description="Max tree depth"
            ),
            "eta": HyperParameterSpec(
                dtype="float", estimator_param="learning_rate", min=1e-6, max=1.0, description="Learning rate"
            ),
        },
    )
    return [gbr]


# ----------------------------------------------------------------------
# Training jobs
# ----------------------------------------------------------------------
class TrainingJobStatus(str, Enum):
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"
    STOPPED = "Stopped"


MAX_RUNTIME_EXCEEDED = "MaxRuntimeExceeded"


@dataclass(frozen=True)
class TrainingJobRequest:
    training_job_name: str
    image: str
    instance_type: str
    max_runtime_seconds: float
    training_data_prefix: str
    target: str
    hyperparameters: Dict[str, Any] = field(default_factory=dict)
    instance_count: int = 1


@dataclass
class TrainingJob:
    training_job_name: str
    request: TrainingJobRequest
    status: TrainingJobStatus
    secondary_status: str
    created_at: datetime
    finished_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    model_artifact: Optional[str] = None
    metrics: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "training_job_name": self.training_job_name,
            "status": self.status.value,
            "secondary_status": self.secondary_status,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "failure_reason": self.failure_reason,
            "model_artifact": self.model_artifact,
            "metrics": dict(self.metrics),
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


def split_features(df: pd.DataFrame, target: str) -> Tuple[pd.DataFrame, pd.Series]:
    """Separa alvo e features numéricas (as demais colunas numéricas do agregado)."""
    if target not in df.columns:
        raise ValueError(f"Target column not found in training data: {target}")
    numeric = df.select_dtypes(include="number")
    features = [c for c in numeric.columns if c != target]
    if not features:
        raise ValueError("Training data has no numeric feature columns")
    data = df[features + [target]].dropna()
    if data.empty:
        raise ValueError("Training data has no complete rows")
    return data[features], data[target]


class TrainingRuntime:
    """Executa training jobs localmente e persiste o modelo no object store."""

    def __init__(
        self,
        *,
        store: Any,
        artifacts: ModelArtifactStore,
        registry: Optional[AlgorithmRegistry] = None,
        supported_instance_types: Tuple[str, ...] = TRAINING_INSTANCE_TYPES,
    ):
        self.store = store
        self.artifacts = artifacts
        self.registry = registry or AlgorithmRegistry.v1()
        self.supported_instance_types = supported_instance_types
        self._jobs: Dict[str, TrainingJob] = {}
        self._lock = threading.Lock()

    def describe_training_job(self, name: str) -> TrainingJob:
        with self._lock:
            if name not in self._jobs:
                raise KeyError(f"unknown training job: {name}")
            return self._jobs[name]

    def list_training_jobs(self) -> List[str]:
        with self._lock:
            return sorted(self._jobs.keys())

    def load_training_frame(self, prefix: str) -> pd.DataFrame:
        keys = [k for k in self.store.list_keys(normalize_prefix(prefix)) if k.lower().endswith(".csv")]
        if not keys:
            raise ValueError(f"No training data (.csv) under {prefix}")
        frames = [pd.read_csv(io.BytesIO(self.store.get_bytes(k))) for k in keys]
        return pd.concat(frames, ignore_index=True)

    def create_training_job(self, request: TrainingJobRequest) -> TrainingJob:
        """Executa o job até um estado terminal (bloqueante)."""
        job = TrainingJob(
            training_job_name=request.training_job_name,
            request=request,
            status=TrainingJobStatus.IN_PROGRESS,
            secondary_status="Starting",
            created_at=_now(),
        )
        with self._lock:
            if request.training_job_name in self._jobs:
                raise ValueError(f"training job already exists: {request.training_job_name}")
            self._jobs[request.training_job_name] = job

        try:
            if request.instance_type not in self.supported_instance_types:
                raise ValueError(f"Unsupported training instance type: {request.instance_type}")
            if request.instance_count != 1:
                raise ValueError("Only single-instance training is supported")

            spec = self.registry.get(request.image)
            estimator = spec.build(request.hyperparameters)
            df = self.load_training_frame(request.training_data_prefix)
            X, y = split_features(df, request.target)
        except (KeyError, ValueError) as e:
            return self._finish(job, TrainingJobStatus.FAILED, "Failed", failure_reason=str(e).strip("'"))

        job.secondary_status = "Training"
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"train-{request.training_job_name}")
        future = executor.submit(estimator.fit, X, y)
        try:
            fitted = future.result(timeout=request.max_runtime_seconds)
        except FutureTimeoutError:
            return self._finish(
                job,
                TrainingJobStatus.STOPPED,
                MAX_RUNTIME_EXCEEDED,
                failure_reason=f"Training exceeded max runtime of {request.max_runtime_seconds}s",
            )
        except Exception as e:
            return self._finish(job, TrainingJobStatus.FAILED, "Failed", failure_reason=f"{e.__class__.__name__}: {e}")
        finally:
            executor.shutdown(wait=False)

        job.secondary_status = "Uploading"
        try:
            rmse = math.sqrt(float(mean_squared_error(y, fitted.predict(X))))
            meta = self.artifacts.save(
                training_job_name=request.training_job_name,
                bundle=ModelBundle(
                    estimator=fitted,
                    features=list(X.columns),
                    target=request.target,
                    image=request.image,
                ),
            )
        except Exception as e:
            return self._finish(job, TrainingJobStatus.FAILED, "Failed", failure_reason=f"{e.__class__.__name__}: {e}")
        job.model_artifact = meta["key"]
        job.metrics = {"train_rmse": rmse, "rows": float(len(X))}
        return self._finish(job, TrainingJobStatus.COMPLETED, "Completed")

    def _finish(
        self,
        job: TrainingJob,
        status: TrainingJobStatus,
        secondary_status: str,
        failure_reason: Optional[str] = None,
    ) -> TrainingJob:
        job.status = status
        job.secondary_status = secondary_status
        job.failure_reason = failure_reason
        job.finished_at = _now()
        return job


__all__ = [
    "DEFAULT_IMAGE",
    "MAX_RUNTIME_EXCEEDED",
    "AlgorithmRegistry",
    "AlgorithmSpec",
    "HyperParameterSpec",
    "TrainingJob",
    "TrainingJobRequest",
    "TrainingJobStatus",
    "TrainingRuntime",
    "split_features",
]
