"""Core mathematics and configuration for the prop edge framework.

This package contains pure, sport-agnostic building blocks:

- ``odds_math``    — odds conversion, fair odds / EV%, logit and normal transforms
- ``kelly``        — fractional Kelly sizing
- ``markets``      — price records and the moneyline / spread / total variants
- ``model_config`` — every tunable coefficient used by the engines
- ``errors``       — the recoverable error kinds raised by the engines

Nothing in this package imports from ``propedge.services``.
All modules are side-effect-free and unit-testable in isolation.
"""
