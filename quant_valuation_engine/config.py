"""
Engine configuration.

Numerical defaults for the solvers and optimizers, loadable from a dict or
from QVE_* environment variables. Functions in the engine take explicit
keyword arguments; these dataclasses are how callers keep them in one place.
"""
from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from .errors import InvalidDomainInput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptionConfig:
    binomial_steps: int = 100
    iv_lower: float = 0.001
    iv_upper: float = 5.0
    iv_tolerance: float = 1e-6
    iv_max_iterations: int = 100


@dataclass(frozen=True)
class BondConfig:
    ytm_tolerance: float = 1e-6
    ytm_max_iterations: int = 100
    yield_bump: float = 0.01


@dataclass(frozen=True)
class OptimizerConfig:
    """Random local search settings (see optimization.py)."""
    iterations: int = 10_000
    step_size: float = 0.01          # perturbations are U(-step/2, +step/2)
    weight_tolerance: float = 0.01   # |sum(w) - 1| allowed

    def __post_init__(self) -> None:
        if self.iterations < 0:
            raise InvalidDomainInput("iterations must be non-negative")
        if self.step_size <= 0:
            raise InvalidDomainInput("step_size must be positive")
        if self.weight_tolerance < 0:
            raise InvalidDomainInput("weight_tolerance must be non-negative")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "WARNING"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class EngineConfig:
    options: OptionConfig = field(default_factory=OptionConfig)
    bonds: BondConfig = field(default_factory=BondConfig)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        return cls(
            options=OptionConfig(**data.get("options", {})),
            bonds=BondConfig(**data.get("bonds", {})),
            optimizer=OptimizerConfig(**data.get("optimizer", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    @classmethod
    def from_env(cls, base: Optional["EngineConfig"] = None) -> "EngineConfig":
        """Override ``base`` (or defaults) with QVE_* environment variables."""
        data = (base or cls()).to_dict()

        if steps := os.getenv("QVE_BINOMIAL_STEPS"):
            data["options"]["binomial_steps"] = int(steps)
        if iv_tol := os.getenv("QVE_IV_TOLERANCE"):
            data["options"]["iv_tolerance"] = float(iv_tol)
        if ytm_tol := os.getenv("QVE_YTM_TOLERANCE"):
            data["bonds"]["ytm_tolerance"] = float(ytm_tol)
        if ytm_iter := os.getenv("QVE_YTM_MAX_ITERATIONS"):
            data["bonds"]["ytm_max_iterations"] = int(ytm_iter)
        if iters := os.getenv("QVE_OPTIMIZER_ITERATIONS"):
            data["optimizer"]["iterations"] = int(iters)
        if step := os.getenv("QVE_OPTIMIZER_STEP_SIZE"):
            data["optimizer"]["step_size"] = float(step)
        if level := os.getenv("QVE_LOG_LEVEL"):
            data["logging"]["level"] = level.upper()

        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(data: Optional[Dict[str, Any]] = None, use_env: bool = True) -> EngineConfig:
    """
    Precedence: environment variables > ``data`` > defaults.
    """
    config = EngineConfig.from_dict(data) if data else EngineConfig()
    if use_env:
        config = EngineConfig.from_env(config)
    logger.debug("Loaded engine config: %s", config)
    return config


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """Attach a stream handler to the package logger. Opt-in; never run on import."""
    config = config or LoggingConfig()
    pkg_logger = logging.getLogger("quant_valuation_engine")
    pkg_logger.setLevel(config.level)

    if not any(isinstance(h, logging.StreamHandler) for h in pkg_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(config.format))
        pkg_logger.addHandler(handler)
