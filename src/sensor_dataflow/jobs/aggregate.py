"""Job batch: aggregate (estágio 2).

Agrupa os registros limpos em janelas alinhadas à época e grava um
registro por par (janela, dispositivo), em CSV e em parquet.

Regras:
- janela de um registro: `floor(t / window_seconds) * window_seconds`
- um registro em `t == window_start` pertence a essa janela
- colunas: window_start, window_end, <key>, count e avg_/min_/max_<medição>
- saída ordenada por (window_start, <key>); reexecuções produzem a mesma saída

Steps:
- aggregate.load_clean → lê todos os parquet sob `--input_path`
- aggregate.windows    → atribuição de janela + agregação
- aggregate.write      → prepara `aggregates.csv` e `aggregates.parquet` e publica os dois

Cada objeto criado em `aggregated/` dispara uma execução do workflow. Os dois
objetos são preparados em temporários ocultos e só são promovidos (e
notificados) quando ambos foram gravados; uma falha ou cancelamento antes
disso não deixa nenhum objeto nem evento.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from sensor_dataflow.core.config.settings import SchemaSettings
from sensor_dataflow.core.pipeline.context import RunContext
from sensor_dataflow.core.pipeline.registry import StepRegistry
from sensor_dataflow.core.pipeline.step import Step
from sensor_dataflow.core.pipeline.types import StepKind, StepResult, StepStatus
from sensor_dataflow.storage.object_store import normalize_prefix

from .common import (
    check_not_cancelled,
    decode_parquet,
    encode_parquet,
    failed_result,
    get_job_cfg,
    output_key,
    parquet_engine,
    remove_stale_outputs,
    schema_from_config,
)


AGGREGATES_CSV = "aggregates.csv"
AGGREGATES_PARQUET = "aggregates.parquet"
DEFAULT_WINDOW_SECONDS = 300


def aggregate_columns(schema: SchemaSettings) -> List[str]:
    cols = ["window_start", "window_end", schema.key_field, "count"]
    for m in schema.measurements:
        cols.extend([f"avg_{m}", f"min_{m}", f"max_{m}"])
    return cols


def window_start(ts: Any, window_seconds: int) -> Any:
    """Início da janela alinhada à época (escalar ou array)."""
    return (np.floor(np.asarray(ts, dtype="float64") / window_seconds) * window_seconds).astype("int64")


def aggregate_frame(df: pd.DataFrame, schema: SchemaSettings, window_seconds: int) -> pd.DataFrame:
    """Agrega registros limpos por (janela, chave)."""
    if df.empty:
        return pd.DataFrame(columns=aggregate_columns(schema))

    work = df[[schema.timestamp_field, schema.key_field, *schema.measurements]].copy()
    work["window_start"] = window_start(work[schema.timestamp_field].to_numpy(), window_seconds)

    grouped = work.groupby(["window_start", schema.key_field], sort=True)
    agg_spec: Dict[str, Any] = {"count": (schema.timestamp_field, "size")}
    for m in schema.measurements:
        agg_spec[f"avg_{m}"] = (m, "mean")
        agg_spec[f"min_{m}"] = (m, "min")
        agg_spec[f"max_{m}"] = (m, "max")

    out = grouped.agg(**agg_spec).reset_index()
    out["window_end"] = out["window_start"] + window_seconds
    out["count"] = out["count"].astype("int64")
    out = out[aggregate_columns(schema)]
    return out.sort_values(["window_start", schema.key_field], kind="mergesort").reset_index(drop=True)


def _window_seconds(ctx: RunContext) -> int:
    value = get_job_cfg(ctx, "aggregate").get("window_seconds", DEFAULT_WINDOW_SECONDS)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError("Invalid config: jobs.aggregate.window_seconds must be a positive int")
    return value


@dataclass
class AggregateLoadCleanStep(Step):
    """Lê os parquet limpos sob `--input_path`."""

    id: str = "aggregate.load_clean"
    kind: StepKind = StepKind.LOAD
    depends_on: List[str] = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.depends_on is None:
            self.depends_on = []

    def run(self, ctx: RunContext) -> StepResult:
        try:
            schema = schema_from_config(ctx.config)
            engine = parquet_engine(ctx)
            input_prefix = normalize_prefix(ctx.argument("input_path"))
            keys = [k for k in ctx.store.list_keys(input_prefix) if k.lower().endswith(".parquet")]

            frames = [decode_parquet(ctx.store.get_bytes(k), engine=engine) for k in keys]
            columns = [schema.timestamp_field, schema.key_field, *schema.measurements]
            if frames:
                df = pd.concat(frames, ignore_index=True)
                missing = [c for c in columns if c not in df.columns]
                if missing:
                    raise ValueError(f"Clean data is missing columns: {missing}")
            else:
                df = pd.DataFrame(columns=columns)
                ctx.add_warning(step_id=self.id, message=f"no clean objects under {input_prefix}")

            ctx.set_artifact("clean.frame", df)
            ctx.log(
                step_id=self.id,
                level="info",
                message="clean data loaded",
                input_path=input_prefix,
                objects=len(keys),
                rows=len(df),
            )
            return StepResult(
                step_id=self.id,
                kind=self.kind,
                status=StepStatus.SUCCESS,
                summary="clean data loaded",
                metrics={"objects": len(keys), "rows": int(len(df))},
                warnings=[],
                artifacts={"input_keys": keys},
                payload={"input_path": input_prefix},
            )
        except Exception as e:
            return failed_result(ctx, step_id=self.id, kind=self.kind, exc=e)


@dataclass
class AggregateWindowsStep(Step):
    """Atribui janelas e calcula count/avg/min/max por (janela, chave)."""

    id: str = "aggregate.windows"
    kind: StepKind = StepKind.AGGREGATE
    depends_on: List[str] = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.depends_on is None:
            self.depends_on = ["aggregate.load_clean"]

    def run(self, ctx: RunContext) -> StepResult:
        try:
            schema = schema_from_config(ctx.config)
            window = _window_seconds(ctx)
            if not ctx.has_artifact("clean.frame"):
                raise ValueError("Missing required artifact: clean.frame")
            df: pd.DataFrame = ctx.get_artifact("clean.frame")

            out = aggregate_frame(df, schema, window)
            ctx.set_artifact("aggregate.frame", out)

            windows = int(out["window_start"].nunique()) if not out.empty else 0
            ctx.log(
                step_id=self.id,
                level="info",
                message="windows aggregated",
                window_seconds=window,
                groups=len(out),
                windows=windows,
            )
            return StepResult(
                step_id=self.id,
                kind=self.kind,
                status=StepStatus.SUCCESS,
                summary="windows aggregated",
                metrics={"rows_in": int(len(df)), "groups": int(len(out)), "windows": windows},
                warnings=[],
                artifacts={},
                payload={"window_seconds": window},
            )
        except Exception as e:
            return failed_result(ctx, step_id=self.id, kind=self.kind, exc=e)


@dataclass
class AggregateWriteStep(Step):
    """Grava os agregados em CSV e parquet sob `--output_path`."""

    id: str = "aggregate.write"
    kind: StepKind = StepKind.EXPORT
    depends_on: List[str] = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.depends_on is None:
            self.depends_on = ["aggregate.windows"]

    def run(self, ctx: RunContext) -> StepResult:
        staged = []
        try:
            engine = parquet_engine(ctx)
            output_prefix = normalize_prefix(ctx.argument("output_path"))
            csv_key = output_key(output_prefix, AGGREGATES_CSV)
            parquet_key = output_key(output_prefix, AGGREGATES_PARQUET)

            if not ctx.has_artifact("aggregate.frame"):
                raise ValueError("Missing required artifact: aggregate.frame")
            out: pd.DataFrame = ctx.get_artifact("aggregate.frame")

            csv_bytes = out.to_csv(index=False).encode("utf-8")
            parquet_bytes = encode_parquet(out, engine=engine)

            # as duas codificações são publicadas juntas ou nenhuma é
            check_not_cancelled(ctx)
            staged.append(ctx.store.stage(csv_key, csv_bytes))
            staged.append(ctx.store.stage(parquet_key, parquet_bytes))
            check_not_cancelled(ctx)
            csv_event, parquet_event = ctx.store.commit(staged)
            staged = []
            removed = remove_stale_outputs(ctx.store, output_prefix, keep=[csv_key, parquet_key])

            ctx.log(
                step_id=self.id,
                level="info",
                message="aggregates written",
                keys=[csv_key, parquet_key],
                rows=len(out),
                removed=removed,
            )
            return StepResult(
                step_id=self.id,
                kind=self.kind,
                status=StepStatus.SUCCESS,
                summary="aggregates written",
                metrics={"rows": int(len(out)), "bytes": csv_event.size + parquet_event.size},
                warnings=[],
                artifacts={"output_keys": [csv_key, parquet_key]},
                payload={"output_path": output_prefix, "engine": engine},
            )
        except Exception as e:
            ctx.store.discard(staged)
            return failed_result(ctx, step_id=self.id, kind=self.kind, exc=e)


def build_aggregate_steps() -> List[Step]:
    """Steps do job aggregate, na ordem declarada."""
    return StepRegistry.of([AggregateLoadCleanStep(), AggregateWindowsStep(), AggregateWriteStep()]).list()


__all__ = [
    "AGGREGATES_CSV",
    "AGGREGATES_PARQUET",
    "AggregateLoadCleanStep",
    "AggregateWindowsStep",
    "AggregateWriteStep",
    "aggregate_columns",
    "aggregate_frame",
    "build_aggregate_steps",
    "window_start",
]
