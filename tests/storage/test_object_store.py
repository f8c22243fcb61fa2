# tests/storage/test_object_store.py
"""
Testes do object store local.

Os testes asseguram que:
- escrita é atômica e não deixa temporários visíveis
- cada escrita bem-sucedida publica exatamente um ObjectCreated
- chaves absolutas ou com `..` são rejeitadas
- listagem é ordenada e restrita ao prefixo
- erros de leitura viram StoreReadError

Limites explícitos:
    - Não valida roteamento de eventos (ver tests/orchestration)
"""

import hashlib

import pytest

try:
    from sensor_dataflow.core.exceptions import StoreReadError
    from sensor_dataflow.storage import LocalObjectStore, StoreLayout
    from sensor_dataflow.storage.object_store import OBJECT_CREATED, normalize_key, normalize_prefix
except Exception as e:  # noqa: BLE001
    LocalObjectStore = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if LocalObjectStore is None:
        pytest.fail(f"Missing object store. Import error: {_IMPORT_ERR}")


def test_put_publishes_one_event_per_write(store):
    _require_imports()
    received = []
    store.subscribe(received.append)

    event = store.put_text("aggregated/aggregates.csv", "a,b\n")

    assert received == [event]
    assert event.event_type == OBJECT_CREATED
    assert event.bucket == "sensor-dataflow"
    assert event.key == "aggregated/aggregates.csv"
    assert event.size == 4
    assert event.etag == hashlib.sha256(b"a,b\n").hexdigest()
    assert event.to_dict()["event_id"] == event.event_id


def test_overwrite_is_atomic_and_leaves_no_temp_files(store):
    _require_imports()
    store.put_bytes("clean/part-00000.parquet", b"old")
    store.put_bytes("clean/part-00000.parquet", b"new")

    assert store.get_bytes("clean/part-00000.parquet") == b"new"
    assert store.list_keys("clean/") == ["clean/part-00000.parquet"]
    assert not [p for p in (store.root / "clean").iterdir() if p.name.startswith(".tmp-")]


def test_list_is_sorted_and_scoped(store):
    _require_imports()
    for key in ("raw/b.jsonl", "raw/a.jsonl", "raw/2026/c.csv", "clean/x.parquet"):
        store.put_text(key, "{}")

    assert store.list_keys("raw/") == ["raw/2026/c.csv", "raw/a.jsonl", "raw/b.jsonl"]
    assert store.list_keys("missing/") == []
    assert len(store.list_keys()) == 4


def test_delete_and_delete_prefix(store):
    _require_imports()
    store.put_text("clean/a.parquet", "1")
    store.put_text("clean/b.parquet", "2")

    assert store.delete("clean/a.parquet") is True
    assert store.delete("clean/a.parquet") is False
    assert store.delete_prefix("clean/") == 1
    assert store.list_keys("clean/") == []


def test_missing_object_raises_store_read_error(store):
    _require_imports()
    assert store.exists("raw/none.jsonl") is False
    with pytest.raises(StoreReadError) as exc:
        store.get_bytes("raw/none.jsonl")
    assert exc.value.details["key"] == "raw/none.jsonl"


@pytest.mark.parametrize("key", ["", "   ", "/etc/passwd", "raw/../../escape", ".."])
def test_invalid_keys_are_rejected(store, key):
    _require_imports()
    with pytest.raises(ValueError):
        store.put_text(key, "x")


def test_key_and_prefix_normalization():
    _require_imports()
    assert normalize_key("raw//./a.jsonl") == "raw/a.jsonl"
    assert normalize_key("raw\\a.jsonl") == "raw/a.jsonl"
    assert normalize_prefix("") == ""
    assert normalize_prefix("clean") == "clean/"


def test_layout_creates_prefix_directories(store, make_settings):
    _require_imports()
    layout = StoreLayout.from_settings(make_settings().store)
    store.ensure_layout(layout.prefixes())

    for prefix in layout.prefixes():
        assert (store.root / prefix.rstrip("/")).is_dir()
    assert store.uri().startswith("file://")
    assert layout.data_prefixes() == ["raw/", "clean/", "aggregated/"]
