"""Pool and position state modules"""

from .models import (
    InterestConfig,
    LedgerEvent,
    MarginPoolConfig,
    ParticipantStats,
    PoolState,
    Position,
    RateLimiter,
)
from .reconstructor import StateReconstructor, classify_participants, replay_events

__all__ = [
    'InterestConfig',
    'LedgerEvent',
    'MarginPoolConfig',
    'ParticipantStats',
    'PoolState',
    'Position',
    'RateLimiter',
    'StateReconstructor',
    'classify_participants',
    'replay_events',
]
