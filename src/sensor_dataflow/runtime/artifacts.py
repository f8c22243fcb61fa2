"""Persistência canônica do artefato de modelo treinado (v1).

O artefato é um bundle autocontido (joblib) gravado no object store:

    model-artifacts/<training_job_name>/output/model.joblib

Conteúdo do bundle:
- estimator: estimador sklearn já treinado
- features: colunas de entrada, na ordem usada no fit
- target: coluna alvo
- image: referência do algoritmo de treino

Metadata do artefato (chave, sha256, bytes) é registrada no Manifest via
Event Log quando um Manifest é fornecido.
"""

from __future__ import annotations

import hashlib
import io
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import joblib

from sensor_dataflow.core.traceability.manifest import RunManifest, add_event
from sensor_dataflow.storage.object_store import normalize_prefix


MODEL_FILENAME = "model.joblib"


@dataclass(frozen=True)
class ModelBundle:
    estimator: Any
    features: List[str]
    target: str
    image: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "estimator": self.estimator,
            "features": list(self.features),
            "target": self.target,
            "image": self.image,
        }


class ModelArtifactStore:
    """Grava e carrega bundles de modelo no object store."""

    def __init__(self, *, store: Any, prefix: str = "model-artifacts/"):
        self.store = store
        self.prefix = normalize_prefix(prefix)

    def artifact_key(self, training_job_name: str) -> str:
        return f"{self.prefix}{training_job_name}/output/{MODEL_FILENAME}"

    def save(
        self,
        *,
        training_job_name: str,
        bundle: ModelBundle,
        manifest: Optional[Union[RunManifest, Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        buffer = io.BytesIO()
        joblib.dump(bundle.to_dict(), buffer)
        data = buffer.getvalue()

        key = self.artifact_key(training_job_name)
        self.store.put_bytes(key, data)

        meta = {
            "type": "model",
            "format": "joblib",
            "key": key,
            "sha256": hashlib.sha256(data).hexdigest(),
            "bytes": len(data),
            "image": bundle.image,
        }
        if manifest is not None:
            add_event(
                manifest,
                event_type="artifact_saved",
                ts=datetime.now(timezone.utc),
                payload={"artifact": dict(meta)},
            )
        return meta

    def load(self, key: str) -> ModelBundle:
        data = joblib.load(io.BytesIO(self.store.get_bytes(key)))
        return ModelBundle(
            estimator=data["estimator"],
            features=list(data["features"]),
            target=data["target"],
            image=data["image"],
        )


__all__ = ["MODEL_FILENAME", "ModelArtifactStore", "ModelBundle"]
