from forecastwatch.registry.store import ForecastStore, LoadResult, RejectedRecord

__all__ = ["ForecastStore", "LoadResult", "RejectedRecord"]
