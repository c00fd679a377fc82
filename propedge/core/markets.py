"""Market price records.

:class:`MarketQuote` is the minimal price record: one American odds integer
with the decimal and implied-probability views derived on demand.

Moneyline, spread and total markets arrive from the odds feed as loosely
shaped dicts.  They are normalised here into a tagged union
(:class:`Moneyline` | :class:`Spread` | :class:`Total`), each carrying only
the fields that make sense for its kind.  Every variant exposes ``odds`` and
a ``quote`` property, which is all the edge evaluator needs.

Typical usage::

    from propedge.core.markets import parse_market

    market = parse_market({"kind": "total", "direction": "over",
                           "line": 221.5, "odds": -110})
    market.quote.implied_probability   # 0.5238
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Literal, Mapping, Union

from propedge.core.errors import InvalidOdds
from propedge.core.odds_math import american_to_decimal, implied_prob


@dataclass(slots=True, frozen=True)
class MarketQuote:
    """A single offered price.

    Attributes:
        american_odds: Signed American odds.  Never zero.
    """

    american_odds: int

    def __post_init__(self) -> None:
        # Conversion validates zero / non-finite and raises InvalidOdds.
        american_to_decimal(self.american_odds)
        if int(self.american_odds) != self.american_odds:
            raise InvalidOdds(
                f"American odds {self.american_odds!r} must be a whole number."
            )

    @property
    def decimal_odds(self) -> float:
        return american_to_decimal(self.american_odds)

    @property
    def implied_probability(self) -> float:
        return implied_prob(self.american_odds)


@dataclass(slots=True, frozen=True)
class Moneyline:
    """Straight win/loss price for one side."""

    kind: ClassVar[str] = "moneyline"

    side: str
    odds: int

    def __post_init__(self) -> None:
        MarketQuote(self.odds)

    @property
    def quote(self) -> MarketQuote:
        return MarketQuote(self.odds)


@dataclass(slots=True, frozen=True)
class Spread:
    """Point-spread price; ``line`` is from ``side``'s perspective."""

    kind: ClassVar[str] = "spread"

    side: str
    line: float
    odds: int

    def __post_init__(self) -> None:
        MarketQuote(self.odds)

    @property
    def quote(self) -> MarketQuote:
        return MarketQuote(self.odds)


@dataclass(slots=True, frozen=True)
class Total:
    """Over/under price on a combined total."""

    kind: ClassVar[str] = "total"

    direction: Literal["over", "under"]
    line: float
    odds: int

    def __post_init__(self) -> None:
        if self.direction not in ("over", "under"):
            raise ValueError(
                f"Total direction must be 'over' or 'under', got {self.direction!r}."
            )
        MarketQuote(self.odds)

    @property
    def quote(self) -> MarketQuote:
        return MarketQuote(self.odds)


Market = Union[Moneyline, Spread, Total]


def parse_market(payload: Mapping[str, Any]) -> Market:
    """Build the right market variant from a duck-typed feed record.

    The kind is read from ``kind`` (falling back to ``market`` or
    ``type``).  Extra keys are ignored.

    Raises:
        ValueError: If the kind is unknown or a required field is missing.
        InvalidOdds: If the odds are zero or non-finite.
    """
    kind = str(
        payload.get("kind") or payload.get("market") or payload.get("type") or ""
    ).strip().lower()

    try:
        raw_odds = payload["odds"]
        american_to_decimal(raw_odds)
        odds = int(MarketQuote(float(raw_odds)).american_odds)
        if kind in ("moneyline", "h2h", "ml"):
            return Moneyline(side=str(payload["side"]), odds=odds)
        if kind in ("spread", "spreads"):
            return Spread(
                side=str(payload["side"]),
                line=float(payload["line"]),
                odds=odds,
            )
        if kind in ("total", "totals"):
            return Total(
                direction=str(payload["direction"]).lower(),  # type: ignore[arg-type]
                line=float(payload["line"]),
                odds=odds,
            )
    except KeyError as exc:
        raise ValueError(
            f"Market payload of kind {kind!r} is missing field {exc.args[0]!r}."
        ) from exc
    raise ValueError(f"Unknown market kind {kind!r}.")
