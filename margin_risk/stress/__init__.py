"""Stress testing modules"""

from .engine import StressTestEngine, simulate, sweep
from .models import StressResult

__all__ = ['StressTestEngine', 'StressResult', 'simulate', 'sweep']
