"""Error types raised by the margin risk engine"""


class MarginRiskError(ValueError):
    """Base class for all engine errors"""


class InvalidAmount(MarginRiskError):
    """A numeric input was negative, non-finite, or of the wrong type"""


class PriceUnavailable(MarginRiskError):
    """A USD valuation needed for a risk computation is missing"""


class MalformedConfig(MarginRiskError):
    """Interest or pool configuration is missing or out of range"""
