# tests/core/config/test_hashing.py
"""
Testes do hashing canônico de configuração.

Invariantes:
    - Configurações estruturalmente equivalentes produzem o mesmo hash
    - O hash tem 64 caracteres hexadecimais (SHA-256)
    - Qualquer alteração de valor altera o hash
"""

import pytest

try:
    from sensor_dataflow.core.config.hashing import compute_config_hash
except Exception as e:  # noqa: BLE001
    compute_config_hash = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if compute_config_hash is None:
        pytest.fail(f"Missing compute_config_hash. Import error: {_IMPORT_ERR}")


def test_hash_is_independent_of_key_order():
    _require_imports()
    a = {"store": {"bucket": "b", "prefixes": {"raw": "raw/"}}, "engine": {"fail_fast": True}}
    b = {"engine": {"fail_fast": True}, "store": {"prefixes": {"raw": "raw/"}, "bucket": "b"}}

    h = compute_config_hash(a)

    assert h == compute_config_hash(b)
    assert len(h) == 64
    assert all(c in "0123456789abcdef" for c in h)


def test_hash_changes_with_values():
    _require_imports()
    base = {"jobs": {"aggregate": {"window_seconds": 300}}}
    other = {"jobs": {"aggregate": {"window_seconds": 60}}}
    assert compute_config_hash(base) != compute_config_hash(other)


def test_hash_rejects_non_dict():
    _require_imports()
    with pytest.raises(TypeError):
        compute_config_hash(["not", "a", "dict"])
