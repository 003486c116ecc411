"""Pool, rate, position risk and concentration metrics"""

from .concentration import ConcentrationAnalyzer
from .pool import PoolAccountant
from .risk import RiskMetrics, evaluate

__all__ = ['ConcentrationAnalyzer', 'PoolAccountant', 'RiskMetrics', 'evaluate']
