"""
Runtime de hosting local (substitui o serviço gerenciado de endpoints).

Recursos:
- Model: nome único, referência ao artefato treinado no object store
- EndpointConfig: nome único, variantes de produção (modelo, instâncias,
  tipo de instância, peso)
- Endpoint: nome fixo, criado ou atualizado para apontar para uma config

Regras:
- nomes de Model e EndpointConfig são únicos (reuso é erro)
- endpoints são upsert por nome: a última escrita vence e `version`
  incrementa a cada atualização
- não há exclusão mútua entre execuções concorrentes do workflow; cada
  upsert é atômico individualmente
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from sensor_dataflow.core.config.settings import HOSTING_INSTANCE_TYPES
from sensor_dataflow.core.exceptions import (
    EndpointDeploymentError,
    HostingConfigurationError,
    ModelRegistrationError,
)

from .artifacts import ModelArtifactStore, ModelBundle


DEFAULT_VARIANT_NAME = "AllTraffic"
IN_SERVICE = "InService"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Model:
    name: str
    image: str
    model_artifact: str
    created_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class ProductionVariant:
    model_name: str
    instance_type: str
    variant_name: str = DEFAULT_VARIANT_NAME
    initial_instance_count: int = 1
    initial_variant_weight: float = 1.0


@dataclass(frozen=True)
class EndpointConfig:
    name: str
    variants: Tuple[ProductionVariant, ...]
    created_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class Endpoint:
    name: str
    config_name: str
    status: str
    version: int
    created_at: datetime
    updated_at: datetime
    updated_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "config_name": self.config_name,
            "status": self.status,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "updated_by": self.updated_by,
        }


class HostingRuntime:
    """Registro de modelos, configs e endpoints com inferência local."""

    def __init__(
        self,
        *,
        store: Any,
        artifacts: ModelArtifactStore,
        supported_instance_types: Tuple[str, ...] = HOSTING_INSTANCE_TYPES,
    ):
        self.store = store
        self.artifacts = artifacts
        self.supported_instance_types = supported_instance_types
        self._models: Dict[str, Model] = {}
        self._configs: Dict[str, EndpointConfig] = {}
        self._endpoints: Dict[str, Endpoint] = {}
        self._bundles: Dict[str, ModelBundle] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------
    def create_model(self, *, name: str, image: str, model_artifact: str) -> Model:
        if not self.store.exists(model_artifact):
            raise ModelRegistrationError(
                message=f"Model artifact not found: {model_artifact}",
                details={"model_name": name, "model_artifact": model_artifact},
            )
        model = Model(name=name, image=image, model_artifact=model_artifact)
        with self._lock:
            if name in self._models:
                raise ModelRegistrationError(
                    message=f"Model already exists: {name}",
                    details={"model_name": name},
                )
            self._models[name] = model
        return model

    def describe_model(self, name: str) -> Model:
        with self._lock:
            if name not in self._models:
                raise KeyError(f"unknown model: {name}")
            return self._models[name]

    # ------------------------------------------------------------------
    # Endpoint configs
    # ------------------------------------------------------------------
    def create_endpoint_config(
        self,
        *,
        name: str,
        model_name: str,
        instance_type: str,
        variant_name: str = DEFAULT_VARIANT_NAME,
        initial_instance_count: int = 1,
        initial_variant_weight: float = 1.0,
    ) -> EndpointConfig:
        if instance_type not in self.supported_instance_types:
            raise HostingConfigurationError(
                message=f"Unsupported hosting instance type: {instance_type}",
                details={"instance_type": instance_type, "supported": list(self.supported_instance_types)},
            )
        variant = ProductionVariant(
            model_name=model_name,
            instance_type=instance_type,
            variant_name=variant_name,
            initial_instance_count=initial_instance_count,
            initial_variant_weight=initial_variant_weight,
        )
        config = EndpointConfig(name=name, variants=(variant,))
        with self._lock:
            if model_name not in self._models:
                raise HostingConfigurationError(
                    message=f"Unknown model: {model_name}",
                    details={"endpoint_config_name": name, "model_name": model_name},
                )
            if name in self._configs:
                raise HostingConfigurationError(
                    message=f"Endpoint config already exists: {name}",
                    details={"endpoint_config_name": name},
                )
            self._configs[name] = config
        return config

    def describe_endpoint_config(self, name: str) -> EndpointConfig:
        with self._lock:
            if name not in self._configs:
                raise KeyError(f"unknown endpoint config: {name}")
            return self._configs[name]

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------
    def create_or_update_endpoint(
        self,
        *,
        name: str,
        config_name: str,
        updated_by: Optional[str] = None,
    ) -> Endpoint:
        with self._lock:
            if config_name not in self._configs:
                raise EndpointDeploymentError(
                    message=f"Unknown endpoint config: {config_name}",
                    details={"endpoint_name": name, "endpoint_config_name": config_name},
                )
            now = _now()
            current = self._endpoints.get(name)
            endpoint = Endpoint(
                name=name,
                config_name=config_name,
                status=IN_SERVICE,
                version=(current.version + 1) if current else 1,
                created_at=current.created_at if current else now,
                updated_at=now,
                updated_by=updated_by,
            )
            self._endpoints[name] = endpoint
        return endpoint

    def describe_endpoint(self, name: str) -> Endpoint:
        with self._lock:
            if name not in self._endpoints:
                raise KeyError(f"unknown endpoint: {name}")
            return self._endpoints[name]

    def list_endpoints(self) -> List[str]:
        with self._lock:
            return sorted(self._endpoints.keys())

    def delete_endpoint(self, name: str) -> bool:
        with self._lock:
            return self._endpoints.pop(name, None) is not None

    def invoke_endpoint(self, name: str, rows: Sequence[Dict[str, Any]]) -> List[float]:
        """Predições do modelo servido pelo endpoint para linhas agregadas."""
        endpoint = self.describe_endpoint(name)
        config = self.describe_endpoint_config(endpoint.config_name)
        model = self.describe_model(config.variants[0].model_name)
        bundle = self._bundle(model.model_artifact)

        df = pd.DataFrame(list(rows))
        missing = [c for c in bundle.features if c not in df.columns]
        if missing:
            raise ValueError(f"Invalid payload: missing columns {missing}")
        preds = bundle.estimator.predict(df[bundle.features])
        return [float(p) for p in preds]

    def _bundle(self, key: str) -> ModelBundle:
        with self._lock:
            cached = self._bundles.get(key)
        if cached is not None:
            return cached
        bundle = self.artifacts.load(key)
        with self._lock:
            self._bundles[key] = bundle
        return bundle


__all__ = [
    "DEFAULT_VARIANT_NAME",
    "Endpoint",
    "EndpointConfig",
    "HostingRuntime",
    "IN_SERVICE",
    "Model",
    "ProductionVariant",
]
