"""Job batch: clean (estágio 1).

Lê todos os objetos brutos sob `--input_path`, valida e coerce cada
registro, e grava os registros válidos como um único objeto parquet sob
`--output_path`.

Steps (executados pelo Engine, nesta ordem):
- clean.load_raw  → lê objetos JSON-lines / CSV e publica `raw.records`
- clean.validate  → coerção de tipos + política de registros malformados
- clean.write     → grava `part-00000.parquet` ordenado e remove saída antiga

Política de registros malformados (`jobs.clean.malformed_policy`):
- drop (default): o registro é descartado; contagem em metrics/warnings
- fail: o job falha com TRANSFORM_MALFORMED_RECORD

Config esperada (exemplo):

schema:
  timestamp_field: timestamp
  key_field: device_id
  measurements: [value]
jobs:
  clean:
    malformed_policy: drop
"""

from __future__ import annotations

import csv
import io
import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from sensor_dataflow.core.config.settings import MALFORMED_POLICIES, SchemaSettings
from sensor_dataflow.core.errors import malformed_record
from sensor_dataflow.core.exceptions import MalformedRecordError
from sensor_dataflow.core.pipeline.context import RunContext
from sensor_dataflow.core.pipeline.registry import StepRegistry
from sensor_dataflow.core.pipeline.step import Step
from sensor_dataflow.core.pipeline.types import StepKind, StepResult, StepStatus
from sensor_dataflow.storage.object_store import normalize_prefix

from .common import (
    check_not_cancelled,
    encode_parquet,
    failed_result,
    frame_schema,
    get_job_cfg,
    output_key,
    parquet_engine,
    remove_stale_outputs,
    schema_from_config,
)


CLEAN_OUTPUT_NAME = "part-00000.parquet"
JSON_SUFFIXES = (".json", ".jsonl", ".ndjson")
CSV_SUFFIXES = (".csv",)


@dataclass(frozen=True)
class RawRecord:
    """Registro bruto com sua origem (chave + linha) para diagnóstico."""

    source_key: str
    line: int
    record: Optional[Dict[str, Any]]
    parse_error: Optional[str] = None


# ----------------------------------------------------------------------
# Leitura
# ----------------------------------------------------------------------
def _parse_json_lines(key: str, text: str) -> List[RawRecord]:
    out: List[RawRecord] = []
    for i, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as e:
            out.append(RawRecord(source_key=key, line=i, record=None, parse_error=f"invalid json: {e.msg}"))
            continue
        if not isinstance(obj, dict):
            out.append(RawRecord(source_key=key, line=i, record=None, parse_error="record is not an object"))
            continue
        out.append(RawRecord(source_key=key, line=i, record=obj))
    return out


def _parse_csv(key: str, text: str) -> List[RawRecord]:
    reader = csv.DictReader(io.StringIO(text))
    # linha 1 é o header
    return [RawRecord(source_key=key, line=i, record=dict(row)) for i, row in enumerate(reader, start=2)]


def read_raw_records(store: Any, key: str) -> Tuple[Optional[List[RawRecord]], Optional[str]]:
    """Lê um objeto bruto. Retorna (registros, None) ou (None, motivo) se o formato não é suportado."""
    lower = key.lower()
    if lower.endswith(JSON_SUFFIXES):
        return _parse_json_lines(key, store.get_text(key)), None
    if lower.endswith(CSV_SUFFIXES):
        return _parse_csv(key, store.get_text(key)), None
    return None, f"unsupported object format: {key}"


# ----------------------------------------------------------------------
# Coerção
# ----------------------------------------------------------------------
def coerce_timestamp(value: Any) -> float:
    """Converte para epoch seconds (float). Aceita números e strings numéricas ou ISO-8601."""
    if isinstance(value, bool) or value is None:
        raise ValueError("missing or non-temporal value")
    if isinstance(value, (int, float)):
        ts = float(value)
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        try:
            ts = float(raw)
        except ValueError:
            if raw.endswith(("Z", "z")):
                raw = raw[:-1] + "+00:00"
            try:
                dt = datetime.fromisoformat(raw)
            except ValueError:
                raise ValueError(f"unparseable timestamp: {value!r}")
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            ts = dt.timestamp()
    else:
        raise ValueError("missing or non-temporal value")
    if not math.isfinite(ts):
        raise ValueError("timestamp is not finite")
    return ts


def coerce_key(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        raise ValueError("missing device id")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise ValueError("missing device id")


def coerce_measurement(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise ValueError("missing or non-numeric value")
    if isinstance(value, (int, float)):
        out = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            out = float(value.strip())
        except ValueError:
            raise ValueError(f"non-numeric value: {value!r}")
    else:
        raise ValueError("missing or non-numeric value")
    if not math.isfinite(out):
        raise ValueError("value is not finite")
    return out


def coerce_record(raw: RawRecord, schema: SchemaSettings) -> Tuple[Optional[Dict[str, Any]], Dict[str, str]]:
    """Valida um registro bruto.

    Returns:
        (registro coerido, {}) se válido; (None, {campo: motivo}) caso contrário.
    """
    if raw.record is None:
        return None, {"record": raw.parse_error or "unreadable record"}

    rec = raw.record
    reasons: Dict[str, str] = {}
    out: Dict[str, Any] = {}

    try:
        out[schema.timestamp_field] = coerce_timestamp(rec.get(schema.timestamp_field))
    except ValueError as e:
        reasons[schema.timestamp_field] = str(e)

    try:
        out[schema.key_field] = coerce_key(rec.get(schema.key_field))
    except ValueError as e:
        reasons[schema.key_field] = str(e)

    for field_name in schema.measurements:
        try:
            out[field_name] = coerce_measurement(rec.get(field_name))
        except ValueError as e:
            reasons[field_name] = str(e)

    if reasons:
        return None, reasons
    return out, {}


# ----------------------------------------------------------------------
# Steps
# ----------------------------------------------------------------------
@dataclass
class CleanLoadRawStep(Step):
    """Lê todos os objetos brutos sob `--input_path`."""

    id: str = "clean.load_raw"
    kind: StepKind = StepKind.LOAD
    depends_on: List[str] = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.depends_on is None:
            self.depends_on = []

    def run(self, ctx: RunContext) -> StepResult:
        try:
            input_prefix = normalize_prefix(ctx.argument("input_path"))
            keys = ctx.store.list_keys(input_prefix)

            records: List[RawRecord] = []
            skipped: List[str] = []
            for key in keys:
                parsed, reason = read_raw_records(ctx.store, key)
                if parsed is None:
                    skipped.append(key)
                    ctx.add_warning(step_id=self.id, message=reason or f"skipped object: {key}")
                    continue
                records.extend(parsed)

            ctx.set_artifact("raw.records", records)
            ctx.log(
                step_id=self.id,
                level="info",
                message="raw objects loaded",
                input_path=input_prefix,
                objects=len(keys) - len(skipped),
                records=len(records),
            )

            return StepResult(
                step_id=self.id,
                kind=self.kind,
                status=StepStatus.SUCCESS,
                summary="raw objects loaded",
                metrics={
                    "objects": len(keys) - len(skipped),
                    "objects_skipped": len(skipped),
                    "records_in": len(records),
                },
                warnings=[],
                artifacts={"input_keys": [k for k in keys if k not in skipped]},
                payload={"input_path": input_prefix},
            )
        except Exception as e:
            return failed_result(ctx, step_id=self.id, kind=self.kind, exc=e)


@dataclass
class CleanValidateStep(Step):
    """Coerção de tipos e aplicação da política de registros malformados."""

    id: str = "clean.validate"
    kind: StepKind = StepKind.VALIDATE
    depends_on: List[str] = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.depends_on is None:
            self.depends_on = ["clean.load_raw"]

    def run(self, ctx: RunContext) -> StepResult:
        try:
            schema = schema_from_config(ctx.config)
            policy = get_job_cfg(ctx, "clean").get("malformed_policy", "drop")
            if policy not in MALFORMED_POLICIES:
                raise ValueError(f"Invalid config: jobs.clean.malformed_policy={policy!r}")

            if not ctx.has_artifact("raw.records"):
                raise ValueError("Missing required artifact: raw.records")
            raw_records: List[RawRecord] = ctx.get_artifact("raw.records")

            valid: List[Dict[str, Any]] = []
            dropped = 0
            for index, raw in enumerate(raw_records):
                coerced, reasons = coerce_record(raw, schema)
                if coerced is not None:
                    valid.append(coerced)
                    continue

                if policy == "fail":
                    payload = malformed_record(index=index, reasons=reasons, source_key=raw.source_key)
                    raise MalformedRecordError(
                        message=f"Malformed record at {raw.source_key}:{raw.line}",
                        details={**payload.details, "line": raw.line},
                        hint=payload.hint,
                    )

                dropped += 1
                ctx.log(
                    step_id=self.id,
                    level="warning",
                    message="malformed record dropped",
                    source_key=raw.source_key,
                    line=raw.line,
                    reasons=reasons,
                )

            warnings: List[str] = []
            if dropped:
                warnings.append(f"dropped {dropped} malformed record(s)")

            ctx.set_artifact("clean.records", valid)
            ctx.log(
                step_id=self.id,
                level="info",
                message="records validated",
                records_in=len(raw_records),
                records_out=len(valid),
                dropped=dropped,
                policy=policy,
            )

            return StepResult(
                step_id=self.id,
                kind=self.kind,
                status=StepStatus.SUCCESS,
                summary="records validated",
                metrics={
                    "records_in": len(raw_records),
                    "records_out": len(valid),
                    "dropped": dropped,
                },
                warnings=warnings,
                artifacts={},
                payload={"policy": policy},
            )
        except Exception as e:
            return failed_result(ctx, step_id=self.id, kind=self.kind, exc=e)


@dataclass
class CleanWriteStep(Step):
    """Grava os registros válidos como um único parquet ordenado."""

    id: str = "clean.write"
    kind: StepKind = StepKind.EXPORT
    depends_on: List[str] = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.depends_on is None:
            self.depends_on = ["clean.validate"]

    def run(self, ctx: RunContext) -> StepResult:
        try:
            schema = schema_from_config(ctx.config)
            engine = parquet_engine(ctx)
            output_prefix = normalize_prefix(ctx.argument("output_path"))
            key = output_key(output_prefix, CLEAN_OUTPUT_NAME)

            if not ctx.has_artifact("clean.records"):
                raise ValueError("Missing required artifact: clean.records")
            records: List[Dict[str, Any]] = ctx.get_artifact("clean.records")

            columns = [schema.timestamp_field, schema.key_field, *schema.measurements]
            df = pd.DataFrame(records, columns=columns)
            df = df.sort_values([schema.timestamp_field, schema.key_field], kind="mergesort").reset_index(drop=True)

            data = encode_parquet(df, engine=engine, schema=frame_schema(schema))

            check_not_cancelled(ctx)
            event = ctx.store.put_bytes(key, data)
            removed = remove_stale_outputs(ctx.store, output_prefix, keep=[key])

            ctx.log(
                step_id=self.id,
                level="info",
                message="clean output written",
                key=key,
                rows=len(df),
                engine=engine,
                removed=removed,
            )

            return StepResult(
                step_id=self.id,
                kind=self.kind,
                status=StepStatus.SUCCESS,
                summary="clean output written",
                metrics={"rows": int(len(df)), "bytes": event.size},
                warnings=[],
                artifacts={"output_keys": [key], "etag": event.etag},
                payload={"output_path": output_prefix, "engine": engine},
            )
        except Exception as e:
            return failed_result(ctx, step_id=self.id, kind=self.kind, exc=e)


def build_clean_steps() -> List[Step]:
    """Steps do job clean, na ordem declarada."""
    return StepRegistry.of([CleanLoadRawStep(), CleanValidateStep(), CleanWriteStep()]).list()


__all__ = [
    "CLEAN_OUTPUT_NAME",
    "CleanLoadRawStep",
    "CleanValidateStep",
    "CleanWriteStep",
    "RawRecord",
    "build_clean_steps",
    "coerce_record",
    "coerce_timestamp",
    "read_raw_records",
]
