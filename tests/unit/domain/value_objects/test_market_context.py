"""
Unit tests for market context value objects.
"""

import pytest

from src.domain.value_objects.market_context import (
    ALL_ASSET_CLASSES,
    EQUITY_ASSET_CLASSES,
    AssetClass,
    Direction,
    is_index_symbol,
)


class TestAssetClass:
    """Test ticker classification."""

    @pytest.mark.parametrize(
        "symbol, expected",
        [
            ("SPX", AssetClass.INDEX),
            ("$spx", AssetClass.INDEX),
            ("I:NDX", AssetClass.INDEX),
            ("SPY", AssetClass.EQUITY_ETF),
            (" qqq ", AssetClass.EQUITY_ETF),
            ("AAPL", AssetClass.STOCK),
            ("UNKNOWN", AssetClass.STOCK),
        ],
    )
    def test_for_symbol(self, symbol, expected):
        assert AssetClass.for_symbol(symbol) is expected

    def test_is_index_symbol(self):
        assert is_index_symbol("NDX")
        assert not is_index_symbol("QQQ")

    def test_groups(self):
        assert ALL_ASSET_CLASSES == {AssetClass.STOCK, AssetClass.EQUITY_ETF, AssetClass.INDEX}
        assert AssetClass.INDEX not in EQUITY_ASSET_CLASSES


class TestDirection:
    """Test trade direction."""

    def test_sign(self):
        assert Direction.LONG.sign == 1
        assert Direction.SHORT.sign == -1
