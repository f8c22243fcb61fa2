"""Layout fixo de prefixos do object store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from sensor_dataflow.core.config.settings import StoreSettings


@dataclass(frozen=True)
class StoreLayout:
    raw: str = "raw/"
    clean: str = "clean/"
    aggregated: str = "aggregated/"
    scripts: str = "scripts/"
    model_artifacts: str = "model-artifacts/"

    @classmethod
    def from_settings(cls, store: StoreSettings) -> "StoreLayout":
        return cls(
            raw=store.raw_prefix,
            clean=store.clean_prefix,
            aggregated=store.aggregated_prefix,
            scripts=store.scripts_prefix,
            model_artifacts=store.model_artifacts_prefix,
        )

    def prefixes(self) -> List[str]:
        return [self.raw, self.clean, self.aggregated, self.scripts, self.model_artifacts]

    def data_prefixes(self) -> List[str]:
        """Prefixos expostos como saída do stack (raw, clean, aggregated)."""
        return [self.raw, self.clean, self.aggregated]
