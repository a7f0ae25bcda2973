"""Market data models passed from the fetch layer to the indicator engine."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PriceHistory:
    """Chronological closing prices for one instrument.

    ``timestamps[i]`` is the open time of the bar that closed at
    ``closes[i]``. Oldest first.
    """

    symbol: str
    source: str
    timestamps: list[datetime]
    closes: list[float]

    def __post_init__(self) -> None:
        if len(self.timestamps) != len(self.closes):
            raise ValueError(
                f"timestamps ({len(self.timestamps)}) and closes ({len(self.closes)}) "
                "differ in length"
            )

    def __len__(self) -> int:
        return len(self.closes)

    @property
    def latest_price(self) -> float | None:
        return self.closes[-1] if self.closes else None
