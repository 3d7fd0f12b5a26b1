from forecastwatch.resolution.chain import CascadeResult, ChainResolver
from forecastwatch.resolution.evaluator import (
    build_resolution,
    check_breach,
    compute_profit_rates,
    evaluate,
)

__all__ = [
    "CascadeResult",
    "ChainResolver",
    "build_resolution",
    "check_breach",
    "compute_profit_rates",
    "evaluate",
]
