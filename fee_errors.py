"""
Error types for the vault fee engine.

Every error here is fatal for the call that raised it. Ordinary outcomes such as
zero elapsed time, an empty share supply or a negative performance fee
settlement are returned as values, never raised.
"""


class FeeEngineError(Exception):
    """Base exception for all fee engine errors."""
    pass


class InvalidFeeHook(FeeEngineError):
    """Raised when a settlement is requested for a value that is not a known fee hook."""
    pass


class DilutionPrecondition(FeeEngineError):
    """Raised when the raw shares due are not strictly less than the share supply."""
    pass


class RateOutOfRange(FeeEngineError):
    """Raised when a configured fee rate falls outside the range its formula supports."""
    pass


class ArithmeticOverflow(FeeEngineError):
    """Raised when a fixed-point value does not fit the 256-bit word of the on-chain ledger."""
    pass


class TradePrecondition(FeeEngineError):
    """Raised when a pending buy or redeem would leave the fund in an undefined state."""
    pass


class FeeNotActivated(FeeEngineError):
    """Raised when a fee is settled or paid out before activation."""
    pass
