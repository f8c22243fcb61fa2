"""
Helpers compartilhados pelos jobs batch (clean / aggregate).

- leitura de seções de config usadas pelos Steps (schema, job)
- codificação/decodificação parquet em memória (pyarrow)
- promoção de saída: grava os novos objetos e só então remove os antigos
- verificação de cancelamento (stop / timeout do JobRunner)
"""

from __future__ import annotations

import io
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from sensor_dataflow.core.config.settings import PARQUET_ENGINES, SchemaSettings
from sensor_dataflow.core.pipeline.context import RunContext
from sensor_dataflow.core.pipeline.types import StepKind, StepResult, StepStatus
from sensor_dataflow.core.errors import error_from_exception
from sensor_dataflow.core.exceptions import EngineConfigurationError, JobStoppedError
from sensor_dataflow.storage.object_store import normalize_prefix


CANCEL_EVENT_META = "cancel_event"


def get_job_cfg(ctx: RunContext, job: str) -> Dict[str, Any]:
    jobs = ctx.config.get("jobs", {}) if isinstance(ctx.config, dict) else {}
    cfg = jobs.get(job, {}) if isinstance(jobs, dict) else {}
    return cfg if isinstance(cfg, dict) else {}


def schema_from_config(config: Dict[str, Any]) -> SchemaSettings:
    schema = config.get("schema") if isinstance(config, dict) else None
    if not isinstance(schema, dict):
        raise ValueError("Missing required config: schema")
    ts = schema.get("timestamp_field")
    key = schema.get("key_field")
    measurements = schema.get("measurements")
    if not isinstance(ts, str) or not ts.strip():
        raise ValueError("Missing required config: schema.timestamp_field")
    if not isinstance(key, str) or not key.strip():
        raise ValueError("Missing required config: schema.key_field")
    if not isinstance(measurements, list) or not measurements:
        raise ValueError("Missing required config: schema.measurements")
    return SchemaSettings(
        timestamp_field=ts.strip(),
        key_field=key.strip(),
        measurements=tuple(str(m).strip() for m in measurements),
    )


def parquet_engine(ctx: RunContext) -> str:
    engine = ctx.arguments.get("engine") or "pyarrow"
    if engine not in PARQUET_ENGINES:
        raise EngineConfigurationError(
            message=f"Unsupported --engine: {engine!r}",
            details={"engine": engine, "supported": list(PARQUET_ENGINES)},
            hint="Use --engine pyarrow ou --engine auto.",
        )
    return engine


def check_not_cancelled(ctx: RunContext) -> None:
    event = (ctx.meta or {}).get(CANCEL_EVENT_META)
    if event is not None and event.is_set():
        raise JobStoppedError(
            message="Job run stopped before writing output",
            details={"run_id": ctx.run_id},
            hint="Re-execute o job manualmente.",
        )


# ----------------------------------------------------------------------
# Parquet
# ----------------------------------------------------------------------
def frame_schema(schema: SchemaSettings) -> pa.Schema:
    """Schema arrow dos registros limpos: timestamp, chave, medições."""
    fields = [
        pa.field(schema.timestamp_field, pa.float64()),
        pa.field(schema.key_field, pa.string()),
    ]
    fields.extend(pa.field(m, pa.float64()) for m in schema.measurements)
    return pa.schema(fields)


def encode_parquet(df: pd.DataFrame, *, engine: str, schema: Optional[pa.Schema] = None) -> bytes:
    buffer = io.BytesIO()
    if engine == "pyarrow":
        table = pa.Table.from_pandas(df, schema=schema, preserve_index=False)
        pq.write_table(table, buffer)
    else:
        df.to_parquet(buffer, engine=engine, index=False)
    return buffer.getvalue()


def decode_parquet(data: bytes, *, engine: str) -> pd.DataFrame:
    if engine == "pyarrow":
        return pq.read_table(pa.BufferReader(data)).to_pandas()
    return pd.read_parquet(io.BytesIO(data), engine=engine)


# ----------------------------------------------------------------------
# Saída
# ----------------------------------------------------------------------
def output_key(prefix: str, name: str) -> str:
    norm = normalize_prefix(prefix)
    if not norm:
        raise ValueError("--output_path must be a non-empty prefix")
    return norm + name


def remove_stale_outputs(store: Any, prefix: str, keep: Iterable[str]) -> List[str]:
    """Remove objetos antigos do prefixo de saída que não fazem parte da nova saída."""
    keep_set = set(keep)
    removed: List[str] = []
    for key in store.list_keys(prefix):
        if key not in keep_set:
            store.delete(key)
            removed.append(key)
    return removed


def failed_result(ctx: RunContext, *, step_id: str, kind: StepKind, exc: Exception) -> StepResult:
    error = error_from_exception(exc)
    ctx.log(
        step_id=step_id,
        level="error",
        message=f"{step_id} failed",
        error_type=error.type,
        error_message=error.message,
    )
    return StepResult(
        step_id=step_id,
        kind=kind,
        status=StepStatus.FAILED,
        summary=error.message or f"{step_id} failed",
        metrics={},
        warnings=[],
        artifacts={},
        payload={"error": error.to_dict()},
    )
