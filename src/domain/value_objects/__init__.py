"""Immutable value objects for type safety."""

from .market_context import (
    ALL_ASSET_CLASSES,
    EQUITY_ASSET_CLASSES,
    INDEX_ASSET_CLASSES,
    AnalysisMode,
    AssetClass,
    Direction,
    is_index_symbol,
)

__all__ = [
    "AnalysisMode",
    "AssetClass",
    "Direction",
    "ALL_ASSET_CLASSES",
    "EQUITY_ASSET_CLASSES",
    "INDEX_ASSET_CLASSES",
    "is_index_symbol",
]
