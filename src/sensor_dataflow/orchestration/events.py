"""
Event bus local + notificador de mudança dos dados agregados.

O bus recebe os eventos `ObjectCreated` do object store e os entrega aos
alvos das regras cujo padrão casa com o evento. A entrega é
at-least-once: o mesmo evento pode ser publicado mais de uma vez e os
alvos devem tolerar isso.

O `ChangeNotifier` instala a regra para o prefixo agregado e converte
cada objeto criado em um `StartSignal` sem payload de dados (apenas o id
do evento de origem, para rastreabilidade) entregue ao orquestrador.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sensor_dataflow.core.errors import error_from_exception
from sensor_dataflow.storage.object_store import OBJECT_CREATED, ObjectCreated, normalize_prefix


EventTarget = Callable[[ObjectCreated], Any]


@dataclass(frozen=True)
class EventPattern:
    """Padrão de casamento de eventos (tipo, bucket e prefixo de chave)."""

    event_type: str = OBJECT_CREATED
    bucket: Optional[str] = None
    key_prefix: str = ""

    def matches(self, event: ObjectCreated) -> bool:
        if event.event_type != self.event_type:
            return False
        if self.bucket is not None and event.bucket != self.bucket:
            return False
        prefix = normalize_prefix(self.key_prefix) if self.key_prefix else ""
        return event.key.startswith(prefix)


@dataclass(frozen=True)
class Rule:
    name: str
    pattern: EventPattern
    target: EventTarget


class EventBus:
    """Bus de eventos com regras nomeadas (uma regra por nome)."""

    def __init__(self) -> None:
        self._rules: Dict[str, Rule] = {}
        self._lock = threading.Lock()
        self.delivered: List[Dict[str, Any]] = []
        self.failed: List[Dict[str, Any]] = []

    def put_rule(self, name: str, pattern: EventPattern, target: EventTarget) -> Rule:
        """Cria ou substitui a regra `name`."""
        if not isinstance(name, str) or not name.strip():
            raise ValueError("rule name must be a non-empty string")
        rule = Rule(name=name, pattern=pattern, target=target)
        with self._lock:
            self._rules[name] = rule
        return rule

    def remove_rule(self, name: str) -> bool:
        with self._lock:
            return self._rules.pop(name, None) is not None

    def list_rules(self) -> List[str]:
        with self._lock:
            return sorted(self._rules.keys())

    def publish(self, event: ObjectCreated) -> int:
        """Entrega o evento a cada regra que casa; retorna quantos alvos foram acionados.

        A falha de um alvo é registrada em `failed` e não interrompe a entrega
        às demais regras nem chega a quem gravou o objeto.
        """
        with self._lock:
            rules = [self._rules[k] for k in sorted(self._rules)]
        fired = 0
        for rule in rules:
            if not rule.pattern.matches(event):
                continue
            record = {"rule": rule.name, "event_id": event.event_id, "key": event.key}
            try:
                rule.target(event)
            except Exception as e:
                with self._lock:
                    self.failed.append({**record, "error": error_from_exception(e).to_dict()})
                continue
            fired += 1
            with self._lock:
                self.delivered.append(record)
        return fired

    def attach_to(self, store: Any) -> "EventBus":
        store.subscribe(self.publish)
        return self


@dataclass(frozen=True)
class StartSignal:
    """Sinal de início do workflow; não carrega dados."""

    source_event_id: str
    signal_id: str = field(default_factory=lambda: f"sig_{uuid.uuid4().hex}")
    time: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class ChangeNotifier:
    """Emite um `StartSignal` por objeto criado sob o prefixo agregado."""

    def __init__(
        self,
        *,
        bus: EventBus,
        bucket: str,
        prefix: str,
        start: Callable[[StartSignal], Any],
        rule_name: str = "aggregated-data-changed",
    ):
        self.bus = bus
        self.pattern = EventPattern(event_type=OBJECT_CREATED, bucket=bucket, key_prefix=prefix)
        self.start = start
        self.rule_name = rule_name
        self.signals: List[StartSignal] = []
        self._lock = threading.Lock()

    def install(self) -> "ChangeNotifier":
        self.bus.put_rule(self.rule_name, self.pattern, self._on_event)
        return self

    def _on_event(self, event: ObjectCreated) -> Any:
        signal = StartSignal(source_event_id=event.event_id)
        with self._lock:
            self.signals.append(signal)
        return self.start(signal)


__all__ = [
    "ChangeNotifier",
    "EventBus",
    "EventPattern",
    "EventTarget",
    "Rule",
    "StartSignal",
]
