"""
Pydantic request/response schemas for the edge computation core.

The surrounding application exposes the engines over JSON endpoints; these
models are the contract for those payloads.  Field names are camelCase on
the wire (``marketOdds``, ``jointProb`` ...) and snake_case in Python.
Malformed payloads fail here with :class:`pydantic.ValidationError` before
they reach the engines.
"""

from __future__ import annotations

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from propedge.core.odds_math import american_to_decimal
from propedge.services.market_edge import AdjustmentSignals, MarketEdgeResult
from propedge.services.player_ratings import PlayerRatingRecord
from propedge.services.sgp_simulator import SimulationLeg, SimulationResult

_WIRE_CONFIG = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "allow_inf_nan": False,
}


# ---------------------------------------------------------------------------
# Market edge
# ---------------------------------------------------------------------------

class MarketEdgeRequest(BaseModel):
    """
    Payload for a single-market edge evaluation.

    Every signal defaults to neutral, so ``{"marketOdds": -110}`` is a valid
    request that returns the market's own probability.
    """

    market_odds: int = Field(..., description="American odds offered")
    injury_impact: float = 0.0
    fatigue_impact: float = 0.0
    travel_impact: float = 0.0
    pace_factor: float = Field(1.0, gt=0, description="Multiplicative, 1.0 = league pace")
    matchup_edge: float = 0.0
    public_bias: float = 0.0

    @field_validator("market_odds")
    @classmethod
    def validate_market_odds(cls, v: int) -> int:
        american_to_decimal(v)
        return int(v)

    def to_signals(self) -> AdjustmentSignals:
        return AdjustmentSignals(
            injury_impact=self.injury_impact,
            fatigue_impact=self.fatigue_impact,
            travel_impact=self.travel_impact,
            pace_factor=self.pace_factor,
            matchup_edge=self.matchup_edge,
            public_bias=self.public_bias,
        )

    model_config = {
        **_WIRE_CONFIG,
        "json_schema_extra": {
            "example": {
                "marketOdds": 150,
                "injuryImpact": 0.0,
                "fatigueImpact": 0.1,
                "travelImpact": 0.0,
                "paceFactor": 1.04,
                "matchupEdge": 0.6,
                "publicBias": 0.0,
            }
        },
    }


class MarketEdgeResponse(BaseModel):
    true_prob: float
    fair_odds: int
    market_prob: float
    market_odds: int
    ev_pct: float
    safety: Literal["safe", "neutral", "risky"]

    model_config = _WIRE_CONFIG

    @classmethod
    def from_result(cls, result: MarketEdgeResult) -> MarketEdgeResponse:
        return cls(
            true_prob=result.true_probability,
            fair_odds=result.fair_odds,
            market_prob=result.market_probability,
            market_odds=result.market_odds,
            ev_pct=result.ev_percent,
            safety=result.safety_tier,
        )


# ---------------------------------------------------------------------------
# Player ratings
# ---------------------------------------------------------------------------

class PlayerRatingOut(BaseModel):
    player_id: Union[int, str]
    player_name: str
    base_overall: float = Field(..., ge=30, le=99)
    matchup_overall: float = Field(..., ge=20, le=99)
    offense: float
    defense: float
    playmaking: float
    usage: float = Field(..., ge=0, le=1)
    fatigue: float = Field(..., ge=0, le=1)
    volatility: float

    model_config = _WIRE_CONFIG

    @classmethod
    def from_record(cls, record: PlayerRatingRecord) -> PlayerRatingOut:
        return cls(**record.to_dict())


# ---------------------------------------------------------------------------
# Correlated parlay simulation
# ---------------------------------------------------------------------------

class SgpLegIn(BaseModel):
    """
    One parlay leg.

    Either distributional (``direction``, ``line``, ``projectedMean``,
    ``projectedStdev`` all present) or probability-only
    (``marginalHitProbability``).
    """

    id: str = Field(..., min_length=1)
    correlation_key: Union[int, str]
    direction: Optional[Literal["over", "under"]] = None
    line: Optional[float] = None
    projected_mean: Optional[float] = None
    projected_stdev: Optional[float] = Field(None, ge=0)
    marginal_hit_probability: Optional[float] = Field(None, ge=0.0, le=1.0)
    stat: Optional[str] = None
    team: Optional[str] = None

    model_config = _WIRE_CONFIG

    @model_validator(mode="after")
    def check_leg_shape(self) -> SgpLegIn:
        if self.marginal_hit_probability is not None:
            return self
        missing = [
            to_camel(name)
            for name in ("direction", "line", "projected_mean", "projected_stdev")
            if getattr(self, name) is None
        ]
        if missing:
            raise ValueError(
                f"Leg {self.id!r} needs marginalHitProbability or a full distribution; "
                f"missing {', '.join(missing)}"
            )
        return self

    def to_leg(self) -> SimulationLeg:
        if self.marginal_hit_probability is not None:
            return SimulationLeg.from_probability(
                self.id,
                self.correlation_key,
                self.marginal_hit_probability,
                stat=self.stat,
                team=self.team,
            )
        return SimulationLeg(
            leg_id=self.id,
            correlation_key=self.correlation_key,
            direction=self.direction,
            line=self.line,
            projected_mean=self.projected_mean,
            projected_stdev=self.projected_stdev,
            stat=self.stat,
            team=self.team,
        )


class SgpSimulateRequest(BaseModel):
    legs: List[SgpLegIn] = Field(..., min_length=1)
    offered_odds: int = Field(..., description="Combined American odds for the ticket")
    iterations: Optional[int] = Field(None, ge=1, le=1_000_000)
    seed: Optional[int] = Field(None, ge=0)

    model_config = _WIRE_CONFIG

    @field_validator("offered_odds")
    @classmethod
    def validate_offered_odds(cls, v: int) -> int:
        american_to_decimal(v)
        return int(v)

    def to_legs(self) -> List[SimulationLeg]:
        return [leg.to_leg() for leg in self.legs]


class LegDiagnosticOut(BaseModel):
    id: str
    base_hit_prob: float
    sim_hit_prob: float

    model_config = _WIRE_CONFIG


class SgpSimulateResponse(BaseModel):
    joint_prob: float = Field(..., gt=0, le=1)
    fair_odds: int
    ev_pct: float
    kelly_fraction: float = Field(..., ge=0, le=1)
    legs: List[LegDiagnosticOut]
    recommended_units: float = 0.0
    iterations: int
    seed: Optional[int] = None

    model_config = _WIRE_CONFIG

    @classmethod
    def from_result(cls, result: SimulationResult) -> SgpSimulateResponse:
        return cls(
            joint_prob=result.joint_probability,
            fair_odds=result.fair_odds,
            ev_pct=result.ev_percent,
            kelly_fraction=result.kelly_fraction,
            legs=[
                LegDiagnosticOut(
                    id=leg.leg_id,
                    base_hit_prob=leg.base_hit_prob,
                    sim_hit_prob=leg.simulated_hit_prob,
                )
                for leg in result.legs
            ],
            recommended_units=result.recommended_units,
            iterations=result.iterations,
            seed=result.seed,
        )
