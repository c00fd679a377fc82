"""
Environment-driven configuration.

The only module that reads process environment.  Engines never call
``os.getenv``; the embedding application calls :func:`load_model_config`
once at startup and passes the resulting :class:`ModelConfig` down.

Recognised variables (all optional)::

    PROPEDGE_SIM_ITERATIONS   Monte Carlo trials per simulation
    PROPEDGE_SIM_BATCH_SIZE   trials per seeded batch
    PROPEDGE_SIM_WORKERS      threads for batch execution
    PROPEDGE_KELLY_SHARE      share of full Kelly for parlay stakes
    PROPEDGE_SAFE_EV_PCT      EV% threshold for the "safe" tier
    PROPEDGE_SAFE_MIN_PROB    probability threshold for the "safe" tier
"""

import os
from dataclasses import replace
from typing import Callable, Dict, Optional, Tuple

from dotenv import load_dotenv

from propedge.core.model_config import DEFAULT_CONFIG, ModelConfig

ENV_PREFIX = "PROPEDGE_"

# env suffix -> (ModelConfig field, parser)
_ENV_FIELDS: Dict[str, Tuple[str, Callable[[str], object]]] = {
    "SIM_ITERATIONS": ("sim_iterations", int),
    "SIM_BATCH_SIZE": ("sim_batch_size", int),
    "SIM_WORKERS": ("sim_workers", int),
    "KELLY_SHARE": ("kelly_share", float),
    "SAFE_EV_PCT": ("safe_ev_pct", float),
    "SAFE_MIN_PROB": ("safe_min_prob", float),
}


def load_model_config(
    env_file: Optional[str] = None,
    base: ModelConfig = DEFAULT_CONFIG,
) -> ModelConfig:
    """
    Build a :class:`ModelConfig` from ``base`` plus any environment overrides.

    Args:
        env_file: Optional path to a ``.env`` file.  Values already set in
            the process environment take precedence over the file.
        base: Config to start from.

    Raises:
        ValueError: If a variable is set but cannot be parsed, naming the
            variable, or if the resulting config is invalid.
    """
    load_dotenv(env_file)

    overrides = {}
    for suffix, (field_name, parse) in _ENV_FIELDS.items():
        name = ENV_PREFIX + suffix
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            continue
        try:
            overrides[field_name] = parse(raw.strip())
        except ValueError as exc:
            raise ValueError(f"{name}={raw!r} is not a valid {parse.__name__}") from exc

    if not overrides:
        return base
    return replace(base, **overrides)
