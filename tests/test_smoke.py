# tests/test_smoke.py
"""
Teste de sanidade estrutural do Sensor DataFlow.

Garante apenas que o pacote é importável e expõe sua versão.

Limites explícitos:
    - Não testa lógica de negócio
    - Não deve acumular asserts funcionais
"""


def test_smoke():
    import sensor_dataflow

    assert sensor_dataflow.__version__
