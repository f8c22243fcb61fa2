"""
Object store local (v1).

Substitui o bucket gerenciado por um diretório no filesystem. Cada chave
é um caminho relativo sob a raiz do store; prefixos (`raw/`, `clean/`,
...) são simplesmente subdiretórios.

Responsabilidades:
- leitura/escrita/listagem/remoção de objetos por chave
- escrita atômica por objeto (arquivo temporário + `os.replace`)
- escrita em duas fases (`stage` + `commit`) para saídas com vários objetos:
  nenhum evento é publicado antes de todos os objetos estarem preparados
- publicação de exatamente um `ObjectCreated` por escrita bem-sucedida

Limites explícitos (v1):
- Sem versionamento de objetos
- Sem controle de acesso (IAM fora de escopo)
- A entrega de eventos é síncrona, no thread que escreveu o objeto
"""

from __future__ import annotations

import hashlib
import os
import tempfile
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, List, Sequence, Union

from sensor_dataflow.core.exceptions import StoreReadError, StoreWriteError


OBJECT_CREATED = "ObjectCreated"


@dataclass(frozen=True)
class ObjectCreated:
    """Evento de criação de objeto (equivalente à notificação do bucket)."""

    bucket: str
    key: str
    size: int
    etag: str
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    event_type: str = OBJECT_CREATED
    time: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "time": self.time,
            "bucket": self.bucket,
            "key": self.key,
            "size": self.size,
            "etag": self.etag,
        }


@dataclass(frozen=True)
class StagedObject:
    """Objeto gravado em temporário oculto, ainda não visível no store."""

    key: str
    tmp_path: Path
    size: int
    etag: str


Subscriber = Callable[[ObjectCreated], None]


def normalize_key(key: str) -> str:
    """Valida e normaliza uma chave de objeto (relativa, sem `..`)."""
    if not isinstance(key, str) or not key.strip():
        raise ValueError("Object key must be a non-empty string")
    raw = key.strip().replace("\\", "/")
    if raw.startswith("/"):
        raise ValueError(f"Object key must be relative: {key!r}")
    parts = [p for p in PurePosixPath(raw).parts if p not in ("", ".")]
    if not parts or any(p == ".." for p in parts):
        raise ValueError(f"Object key escapes the store root: {key!r}")
    return "/".join(parts)


def normalize_prefix(prefix: str) -> str:
    if prefix in ("", "/"):
        return ""
    return normalize_key(prefix) + "/"


class LocalObjectStore:
    """Object store em filesystem com notificação de criação de objetos."""

    def __init__(self, *, root: Union[str, Path], bucket: str):
        if not isinstance(bucket, str) or not bucket.strip():
            raise ValueError("bucket must be a non-empty string")
        self.root = Path(root).expanduser().absolute()
        self.bucket = bucket.strip()
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------
    def subscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(subscriber)

    def _notify(self, event: ObjectCreated) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for sub in subscribers:
            sub(event)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------
    def _path(self, key: str) -> Path:
        return self.root.joinpath(*normalize_key(key).split("/"))

    def uri(self, key: str = "") -> str:
        if not key:
            return f"file://{self.root.as_posix()}"
        return f"file://{self._path(key).as_posix()}"

    def ensure_layout(self, prefixes: List[str]) -> None:
        for prefix in prefixes:
            norm = normalize_prefix(prefix)
            target = self.root.joinpath(*norm.rstrip("/").split("/")) if norm else self.root
            target.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Escrita
    # ------------------------------------------------------------------
    def stage(self, key: str, data: bytes) -> StagedObject:
        """Grava o conteúdo em um temporário oculto ao lado do destino.

        O objeto só fica visível (e só é notificado) após `commit`.

        Raises:
            ValueError: chave inválida.
            StoreWriteError: falha de I/O na escrita.
        """
        norm = normalize_key(key)
        path = self._path(norm)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", dir=str(path.parent))
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StoreWriteError(
                message=f"Failed to write object: {norm}",
                details={"bucket": self.bucket, "key": norm, "os_error": str(e)},
                hint="Verifique permissões e espaço disponível na raiz do store.",
            ) from e
        return StagedObject(
            key=norm,
            tmp_path=Path(tmp_name),
            size=len(data),
            etag=hashlib.sha256(data).hexdigest(),
        )

    def discard(self, staged: Sequence[StagedObject]) -> None:
        """Remove temporários ainda não promovidos (nada é notificado)."""
        for obj in staged:
            if obj.tmp_path.exists():
                obj.tmp_path.unlink()

    def commit(self, staged: Sequence[StagedObject]) -> List[ObjectCreated]:
        """Promove os objetos preparados e só então publica um `ObjectCreated` por objeto."""
        events: List[ObjectCreated] = []
        for i, obj in enumerate(staged):
            try:
                os.replace(obj.tmp_path, self._path(obj.key))
            except OSError as e:
                self.discard(staged[i:])
                raise StoreWriteError(
                    message=f"Failed to write object: {obj.key}",
                    details={
                        "bucket": self.bucket,
                        "key": obj.key,
                        "os_error": str(e),
                        "committed": [o.key for o in staged[:i]],
                    },
                    hint="Verifique permissões e espaço disponível na raiz do store.",
                ) from e
            events.append(ObjectCreated(bucket=self.bucket, key=obj.key, size=obj.size, etag=obj.etag))
        for event in events:
            self._notify(event)
        return events

    def put_bytes(self, key: str, data: bytes) -> ObjectCreated:
        """Grava o objeto atomicamente e publica `ObjectCreated`.

        Raises:
            ValueError: chave inválida.
            StoreWriteError: falha de I/O na escrita.
        """
        return self.commit([self.stage(key, data)])[0]

    def put_text(self, key: str, text: str, encoding: str = "utf-8") -> ObjectCreated:
        return self.put_bytes(key, text.encode(encoding))

    # ------------------------------------------------------------------
    # Leitura
    # ------------------------------------------------------------------
    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def get_bytes(self, key: str) -> bytes:
        norm = normalize_key(key)
        path = self._path(norm)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StoreReadError(
                message=f"Failed to read object: {norm}",
                details={"bucket": self.bucket, "key": norm, "os_error": str(e)},
            ) from e

    def get_text(self, key: str, encoding: str = "utf-8") -> str:
        return self.get_bytes(key).decode(encoding)

    def list_keys(self, prefix: str = "") -> List[str]:
        """Lista chaves sob o prefixo, ordenadas; temporários são ignorados."""
        norm = normalize_prefix(prefix)
        base = self.root.joinpath(*norm.rstrip("/").split("/")) if norm else self.root
        if not base.is_dir():
            return []
        keys: List[str] = []
        for p in base.rglob("*"):
            if p.is_file() and not p.name.startswith(".tmp-"):
                keys.append(p.relative_to(self.root).as_posix())
        return sorted(keys)

    # ------------------------------------------------------------------
    # Remoção
    # ------------------------------------------------------------------
    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.is_file():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise StoreWriteError(
                message=f"Failed to delete object: {normalize_key(key)}",
                details={"bucket": self.bucket, "key": normalize_key(key), "os_error": str(e)},
            ) from e
        return True

    def delete_prefix(self, prefix: str) -> int:
        removed = 0
        for key in self.list_keys(prefix):
            if self.delete(key):
                removed += 1
        return removed


__all__ = [
    "OBJECT_CREATED",
    "ObjectCreated",
    "LocalObjectStore",
    "StagedObject",
    "Subscriber",
    "normalize_key",
    "normalize_prefix",
]
