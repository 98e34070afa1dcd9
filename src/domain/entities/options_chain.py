"""
Options Chain Context - dealer positioning summary supplied alongside a snapshot.

Only detectors flagged ``requires_options_data`` read this; the scanner never
fetches it.
"""

# Standard library imports
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from .feature_snapshot import _get, _to_bool, _to_float


@dataclass(frozen=True)
class OptionsChainContext:
    """
    Aggregated options-chain data for one underlying.

    ``dealer_net_gamma`` is signed: negative means dealers are short gamma
    and hedge in the direction of the move (squeeze fuel), positive means
    they dampen moves (pinning).
    """

    dealer_net_gamma: float | None = None
    max_gamma_strike: float | None = None
    gamma_flip_level: float | None = None
    max_pain_strike: float | None = None
    open_interest_at_strike: Callable[[float], float | None] | None = None
    total_open_interest: float | None = None
    call_put_ratio: float | None = None
    minutes_to_expiry: float | None = None
    is_0dte: bool = False

    @property
    def is_short_gamma(self) -> bool:
        return self.dealer_net_gamma is not None and self.dealer_net_gamma < 0

    @property
    def is_long_gamma(self) -> bool:
        return self.dealer_net_gamma is not None and self.dealer_net_gamma > 0

    def oi_at(self, strike: float | None) -> float | None:
        """Open interest at a strike, or None when no lookup was supplied."""
        if strike is None or self.open_interest_at_strike is None:
            return None
        return _to_float(self.open_interest_at_strike(strike))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "OptionsChainContext":
        """Build from a provider payload.

        ``openInterestByStrike`` may be given as a ``{strike: oi}`` mapping and
        is wrapped into a lookup.
        """
        lookup = None
        by_strike = _get(payload, "openInterestByStrike", "open_interest_by_strike")
        if isinstance(by_strike, Mapping):
            table = {float(strike): oi for strike, oi in by_strike.items()}
            lookup = table.get

        return cls(
            dealer_net_gamma=_to_float(_get(payload, "dealerNetGamma", "dealer_net_gamma")),
            max_gamma_strike=_to_float(_get(payload, "maxGammaStrike", "max_gamma_strike")),
            gamma_flip_level=_to_float(_get(payload, "gammaFlipLevel", "gamma_flip_level")),
            max_pain_strike=_to_float(_get(payload, "maxPainStrike", "max_pain_strike")),
            open_interest_at_strike=lookup,
            total_open_interest=_to_float(
                _get(payload, "totalOpenInterest", "total_open_interest")
            ),
            call_put_ratio=_to_float(_get(payload, "callPutRatio", "call_put_ratio")),
            minutes_to_expiry=_to_float(_get(payload, "minutesToExpiry", "minutes_to_expiry")),
            is_0dte=bool(_to_bool(_get(payload, "is0DTE", "is_0dte"))),
        )
