"""
Trigger condicional entre jobs (clean → aggregate).

Para cada run do job upstream o trigger mantém um estado:
- WAITING: run ainda não concluiu com sucesso (ou terminou com falha)
- FIRED: o job downstream foi iniciado para este run

Regras:
- WAITING → FIRED no máximo uma vez por run upstream, e somente quando o
  status terminal é SUCCEEDED
- FAILED / STOPPED / TIMEOUT mantêm o run em WAITING para sempre
- notificações duplicadas do mesmo run nunca iniciam o downstream de novo
- runs de outros jobs são ignorados
- não há retry do upstream: o operador re-executa manualmente
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from sensor_dataflow.runtime.jobs import JobRun, JobRunStatus, JobRunner


class ChainState(str, Enum):
    WAITING = "WAITING"
    FIRED = "FIRED"


@dataclass
class ChainTrigger:
    runner: JobRunner
    upstream: str
    downstream: str
    arguments: Optional[Dict[str, Any]] = None

    _states: Dict[str, ChainState] = field(default_factory=dict, init=False, repr=False)
    _fired: List[JobRun] = field(default_factory=list, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def attach(self) -> "ChainTrigger":
        """Registra o trigger como listener de conclusão do JobRunner."""
        self.runner.add_completion_listener(self.on_job_run_completed)
        return self

    def state_of(self, upstream_run_id: str) -> ChainState:
        with self._lock:
            return self._states.get(upstream_run_id, ChainState.WAITING)

    @property
    def downstream_runs(self) -> List[JobRun]:
        with self._lock:
            return list(self._fired)

    def on_job_run_completed(self, run: JobRun) -> Optional[JobRun]:
        """Avalia um run concluído; retorna o run downstream iniciado, se houver."""
        if run.job_name != self.upstream:
            return None

        with self._lock:
            self._states.setdefault(run.run_id, ChainState.WAITING)
            if run.status != JobRunStatus.SUCCEEDED:
                return None
            if self._states[run.run_id] == ChainState.FIRED:
                return None
            self._states[run.run_id] = ChainState.FIRED

        downstream_run = self.runner.start_job_run(self.downstream, self.arguments)
        with self._lock:
            self._fired.append(downstream_run)
        return downstream_run


__all__ = ["ChainState", "ChainTrigger"]
