"""Error taxonomy for the analysis pipeline.

Every error here is local to one (symbol, timeframe) computation.  The
engine turns them into an explicit ``NoSignal`` entry; none of them is ever
replaced by a made-up number.
"""


class SignalError(Exception):
    """Base class for failures of a single timeframe computation."""


class InsufficientDataError(SignalError, ValueError):
    """The series is shorter than the lookback an indicator requires."""

    def __init__(self, name: str, required: int, got: int) -> None:
        self.name = name
        self.required = required
        self.got = got
        super().__init__(
            f"Need at least {required} values for {name}, got {got}"
        )


class InvalidCandleError(SignalError, ValueError):
    """A candle violates the OHLC ordering or timestamp invariants."""


class DegenerateRiskError(SignalError, ValueError):
    """The stop sits at (or beyond) the entry, so risk/reward is undefined."""


class StaleDataError(SignalError):
    """The newest candle is older than the freshness threshold."""
