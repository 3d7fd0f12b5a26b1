"""Prediction resolution engine: price monitoring and chain settlement for forecasts."""

__version__ = "0.1.0"
