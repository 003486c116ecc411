"""Margin pool accounting and position risk analytics"""

from .errors import InvalidAmount, MalformedConfig, MarginRiskError, PriceUnavailable

__version__ = "0.1.0"

__all__ = ['MarginRiskError', 'InvalidAmount', 'PriceUnavailable', 'MalformedConfig']
