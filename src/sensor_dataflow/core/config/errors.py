# src/sensor_dataflow/core/config/errors.py
"""
Exceções canônicas da camada de configuração do Sensor DataFlow.

As exceções aqui definidas representam **violações estruturais
explícitas** da configuração (arquivo ausente, formato não suportado,
conflito de tipos no merge, chave obrigatória ausente), e não erros de
execução de job ou de workflow.

Invariantes:
    - Todas as exceções de configuração herdam de `ConfigError`
    - Erros de configuração são sempre fatais (sem fallback)
"""


class ConfigError(Exception):
    """
    Exceção base para erros relacionados à configuração.

    Permite captura genérica de erros de configuração e distinção clara
    entre falhas estruturais e falhas de execução.
    """


class DefaultsNotFoundError(ConfigError):
    """
    O arquivo de configuração base (defaults) não existe no caminho indicado.

    Sem defaults não existe configuração efetiva válida; o loader não
    tenta inferir ou criar defaults.
    """


class UnsupportedConfigFormatError(ConfigError):
    """
    Extensão de arquivo de configuração não suportada.

    Formatos suportados (v1): YAML (.yaml, .yml) e JSON (.json).
    """


class InvalidConfigRootTypeError(ConfigError):
    """O conteúdo raiz da configuração não é um dicionário."""


class ConfigTypeConflictError(ConfigError):
    """
    Conflito de tipos durante o deep-merge.

    Exemplo de conflito:
        - base:     {"training": {"max_runtime_seconds": 600}}
        - override: {"training": "fast"}

    Valores `null` nos defaults não geram conflito: eles representam
    "não definido" e aceitam qualquer override.
    """


class InvalidSettingsError(ConfigError):
    """
    A configuração resolvida não satisfaz o schema de `PipelineSettings`.

    Levantada para chaves obrigatórias ausentes, valores fora do domínio
    (ex.: política de registros malformados desconhecida) ou tipos errados.
    """
