import logging

import pytest

from quant_valuation_engine.config import (
    EngineConfig,
    LoggingConfig,
    OptimizerConfig,
    configure_logging,
    load_config,
)
from quant_valuation_engine.errors import InvalidDomainInput, QuantEngineError


def test_defaults():
    cfg = EngineConfig()
    assert cfg.options.binomial_steps == 100
    assert (cfg.options.iv_lower, cfg.options.iv_upper) == (0.001, 5.0)
    assert cfg.bonds.ytm_tolerance == 1e-6
    assert cfg.optimizer.iterations == 10_000
    assert cfg.optimizer.step_size == 0.01


def test_dict_round_trip():
    cfg = EngineConfig.from_dict({"options": {"binomial_steps": 250}, "optimizer": {"iterations": 500}})
    assert cfg.options.binomial_steps == 250
    assert cfg.optimizer.iterations == 500
    assert cfg.bonds.ytm_max_iterations == 100
    assert EngineConfig.from_dict(cfg.to_dict()) == cfg


def test_env_overrides_take_precedence(monkeypatch):
    monkeypatch.setenv("QVE_BINOMIAL_STEPS", "400")
    monkeypatch.setenv("QVE_OPTIMIZER_ITERATIONS", "1234")
    monkeypatch.setenv("QVE_LOG_LEVEL", "debug")

    cfg = load_config({"options": {"binomial_steps": 250, "iv_tolerance": 1e-8}})
    assert cfg.options.binomial_steps == 400
    assert cfg.options.iv_tolerance == 1e-8
    assert cfg.optimizer.iterations == 1234
    assert cfg.logging.level == "DEBUG"

    assert load_config({"options": {"binomial_steps": 250}}, use_env=False).options.binomial_steps == 250


def test_invalid_optimizer_config():
    with pytest.raises(InvalidDomainInput):
        OptimizerConfig(step_size=0.0)
    with pytest.raises(InvalidDomainInput):
        OptimizerConfig(iterations=-1)


def test_error_hierarchy():
    assert issubclass(InvalidDomainInput, QuantEngineError)
    assert issubclass(QuantEngineError, ValueError)


def test_configure_logging_is_idempotent():
    pkg_logger = logging.getLogger("quant_valuation_engine")
    before = list(pkg_logger.handlers)
    try:
        configure_logging(LoggingConfig(level="DEBUG"))
        configure_logging(LoggingConfig(level="DEBUG"))
        added = [h for h in pkg_logger.handlers if h not in before]
        assert len(added) <= 1
        assert pkg_logger.level == logging.DEBUG
    finally:
        for h in pkg_logger.handlers[:]:
            if h not in before:
                pkg_logger.removeHandler(h)
        pkg_logger.setLevel(logging.NOTSET)
