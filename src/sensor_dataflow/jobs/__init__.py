"""Jobs batch do Sensor DataFlow: clean (estágio 1) e aggregate (estágio 2)."""

from .aggregate import build_aggregate_steps
from .clean import build_clean_steps

__all__ = ["build_aggregate_steps", "build_clean_steps"]
