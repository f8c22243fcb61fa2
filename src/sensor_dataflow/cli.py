"""
Command-line interface do Sensor DataFlow.

Comandos:
- clean      executa o job clean sobre o store local
- aggregate  executa o job aggregate sobre o store local
- run        provisiona o stack e executa o pipeline completo
- outputs    mostra as saídas do stack (store, prefixos, endpoint)

Todos os comandos imprimem JSON em stdout; o exit code é diferente de
zero quando um job ou execução do workflow falha, ou quando execuções
ainda não terminaram ao fim de `run --timeout`.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from sensor_dataflow import __version__
from sensor_dataflow.core.config import ConfigError, load_settings
from sensor_dataflow.core.config.settings import PARQUET_ENGINES, PipelineSettings
from sensor_dataflow.orchestration.workflow import WorkflowExecution
from sensor_dataflow.stack import PipelineStack, build_job_runner, describe_outputs
from sensor_dataflow.storage.object_store import LocalObjectStore


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--store-root", type=str, required=True, help="Root directory of the local object store")
    parser.add_argument("--config", type=str, help="Defaults file (YAML/JSON); packaged defaults when omitted")
    parser.add_argument("--local-config", type=str, help="Optional local overrides file")


def _add_job_args(parser: argparse.ArgumentParser) -> None:
    _add_config_args(parser)
    parser.add_argument("--input_path", type=str, help="Input prefix inside the store")
    parser.add_argument("--output_path", type=str, help="Output prefix inside the store")
    parser.add_argument("--engine", type=str, choices=list(PARQUET_ENGINES), help="Parquet engine")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sensor-dataflow",
        description="Sensor DataFlow: batch transforms, chained jobs and ML deployment workflow",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_job_args(subparsers.add_parser("clean", help="Run the clean job"))
    _add_job_args(subparsers.add_parser("aggregate", help="Run the aggregate job"))

    run_parser = subparsers.add_parser("run", help="Provision the stack and run the whole pipeline")
    _add_config_args(run_parser)
    run_parser.add_argument(
        "--ingest",
        type=str,
        nargs="*",
        default=[],
        help="Local JSON-lines/CSV files copied under the raw prefix before the run",
    )
    run_parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait for workflow executions")

    _add_config_args(subparsers.add_parser("outputs", help="Show stack outputs"))
    return parser


def _settings(args: argparse.Namespace) -> PipelineSettings:
    return load_settings(defaults_path=args.config, local_path=args.local_config)


def _print(data: Dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _run_job(args: argparse.Namespace) -> int:
    settings = _settings(args)
    job_name = settings.clean_job.name if args.command == "clean" else settings.aggregate_job.name
    store = LocalObjectStore(root=args.store_root, bucket=settings.store.bucket)
    runner = build_job_runner(settings, store)

    overrides = {
        k: getattr(args, k) for k in ("input_path", "output_path", "engine") if getattr(args, k) is not None
    }
    run = runner.start_job_run(job_name, overrides)

    out = run.to_dict()
    if run.result is not None:
        out["steps"] = {
            sid: {"status": r.status.value, "summary": r.summary, "metrics": r.metrics, "warnings": r.warnings}
            for sid, r in run.result.steps.items()
        }
    _print(out)
    return 0 if run.succeeded else 1


def _run_pipeline(args: argparse.Namespace) -> int:
    settings = _settings(args)
    stack = PipelineStack.provision(settings, args.store_root)
    pending: List[WorkflowExecution] = []
    try:
        for path in args.ingest:
            src = Path(path)
            stack.store.put_bytes(stack.layout.raw + src.name, src.read_bytes())

        clean_run = stack.start_pipeline()
        executions = stack.wait_for_executions(timeout=args.timeout)
        pending = [e for e in executions if not e.state.terminal]
    finally:
        stack.shutdown(wait=not pending)

    job_runs: List[Dict[str, Any]] = [r.to_dict() for r in stack.runner.list_job_runs()]
    _print(
        {
            "outputs": stack.outputs(),
            "job_runs": job_runs,
            "executions": [e.to_dict() for e in executions],
            "pending_executions": [e.execution_id for e in pending],
        }
    )
    failed_jobs = [r for r in stack.runner.list_job_runs() if not r.succeeded]
    failed_executions = [e for e in executions if not e.succeeded]
    if not clean_run.succeeded or failed_jobs or failed_executions or pending:
        return 1
    return 0


def _outputs(args: argparse.Namespace) -> int:
    settings = _settings(args)
    store = LocalObjectStore(root=args.store_root, bucket=settings.store.bucket)
    _print(describe_outputs(settings, store))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command in ("clean", "aggregate"):
            return _run_job(args)
        if args.command == "run":
            return _run_pipeline(args)
        if args.command == "outputs":
            return _outputs(args)
    except ConfigError as e:
        print(f"[error] invalid configuration: {e}", file=sys.stderr)
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
