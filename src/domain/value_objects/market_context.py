"""Market context value objects: asset class, trade direction and analysis mode."""

# Standard library imports
from enum import Enum


class Direction(Enum):
    """Direction of a trade opportunity."""

    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def sign(self) -> int:
        """+1 for longs, -1 for shorts."""
        return 1 if self is Direction.LONG else -1


class AnalysisMode(Enum):
    """
    How a scan is being run.

    LIVE scans respect the regular-hours session flag. HISTORICAL scans
    (backtests, weekend review) evaluate detectors regardless of session.
    """

    LIVE = "live"
    HISTORICAL = "historical"


class AssetClass(Enum):
    """Coarse symbol category governing which detectors apply."""

    STOCK = "STOCK"
    EQUITY_ETF = "EQUITY_ETF"
    INDEX = "INDEX"

    @classmethod
    def for_symbol(cls, symbol: str) -> "AssetClass":
        """Classify a ticker.

        Args:
            symbol: Ticker as supplied by the feature builder (``$SPX`` style
                index prefixes are accepted)

        Returns:
            The asset class; unknown tickers are treated as single stocks
        """
        normalized = symbol.upper().strip()
        if normalized in _INDEX_SYMBOLS:
            return cls.INDEX
        if normalized in _EQUITY_ETF_SYMBOLS:
            return cls.EQUITY_ETF
        return cls.STOCK


_INDEX_SYMBOLS = frozenset({"SPX", "NDX", "$SPX", "$NDX", "I:SPX", "I:NDX", "RUT", "$RUT", "VIX"})

_EQUITY_ETF_SYMBOLS = frozenset(
    {"SPY", "QQQ", "IWM", "DIA", "XLF", "XLE", "XLK", "XLV", "XLI", "XLP"}
)


def is_index_symbol(symbol: str) -> bool:
    """Check whether a ticker is a cash index (SPX/NDX family)."""
    return AssetClass.for_symbol(symbol) is AssetClass.INDEX


ALL_ASSET_CLASSES: frozenset[AssetClass] = frozenset(AssetClass)
EQUITY_ASSET_CLASSES: frozenset[AssetClass] = frozenset({AssetClass.STOCK, AssetClass.EQUITY_ETF})
INDEX_ASSET_CLASSES: frozenset[AssetClass] = frozenset({AssetClass.INDEX})
