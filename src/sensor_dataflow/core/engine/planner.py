# src/sensor_dataflow/core/engine/planner.py
"""
Planejador de execução dos Steps de um job.

Este módulo valida o grafo de dependências declarado pelos Steps de um
job batch e produz uma ordem de execução topológica determinística.

Decisões arquiteturais:
    - O job deve formar um DAG acíclico
    - Dependências inexistentes são erro estrutural
    - Empates são resolvidos por ordem lexicográfica do `step.id`

Invariantes:
    - Nenhum Step aparece antes de suas dependências
    - A mesma entrada sempre produz a mesma ordem

Limites explícitos:
    - Não executa Steps
    - Não interage com RunContext nem com Manifest
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Set

from sensor_dataflow.core.pipeline.step import Step


class UnknownDependencyError(ValueError):
    """
    Um Step declarou em `depends_on` um `step.id` que não existe no job.

    A validação ocorre antes de qualquer execução; o job é considerado
    inválido e nenhum Step roda.
    """


class CycleDetectedError(ValueError):
    """
    O grafo de dependências do job contém um ciclo.

    Nenhuma ordem topológica válida existe; nenhuma execução parcial é
    permitida.
    """


def plan_execution(steps: Iterable[Step]) -> List[Step]:
    """
    Valida e produz uma ordem de execução topológica determinística de Steps.

    Quando múltiplos Steps estão prontos, a escolha é feita pela ordem
    lexicográfica do `step.id` (variação determinística do algoritmo de Kahn).

    Args:
        steps (Iterable[Step]): Steps declarativos do job.

    Returns:
        List[Step]: Steps em ordem topológica determinística.

    Raises:
        ValueError: Se algum Step possuir `id` inválido ou duplicado.
        UnknownDependencyError: Se um Step declarar dependência inexistente.
        CycleDetectedError: Se houver ciclo no grafo de dependências.
    """
    step_list = list(steps)
    by_id: Dict[str, Step] = {}
    for s in step_list:
        sid = getattr(s, "id", None)
        if not isinstance(sid, str) or not sid.strip():
            raise ValueError("step.id must be a non-empty string")
        if sid in by_id:
            raise ValueError(f"Duplicate step id: {sid}")
        by_id[sid] = s

    deps: Dict[str, List[str]] = {}
    for sid, s in by_id.items():
        d = list(getattr(s, "depends_on", []) or [])
        for dep in d:
            if dep not in by_id:
                raise UnknownDependencyError(f"Step '{sid}' depends on unknown step '{dep}'")
        deps[sid] = d

    incoming_count: Dict[str, int] = {sid: 0 for sid in by_id}
    outgoing: Dict[str, Set[str]] = {sid: set() for sid in by_id}

    for sid, dlist in deps.items():
        incoming_count[sid] = len(dlist)
        for dep in dlist:
            outgoing[dep].add(sid)

    ready: List[str] = sorted([sid for sid, c in incoming_count.items() if c == 0])
    order_ids: List[str] = []

    while ready:
        sid = ready.pop(0)
        order_ids.append(sid)
        for child in sorted(outgoing[sid]):
            incoming_count[child] -= 1
            if incoming_count[child] == 0:
                ready.append(child)
                ready.sort()

    if len(order_ids) != len(by_id):
        raise CycleDetectedError("Cycle detected in step dependency graph")

    return [by_id[sid] for sid in order_ids]
