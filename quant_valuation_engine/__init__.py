"""
Quantitative Valuation Engine

Modules:
- options: Black-Scholes, CRR lattice (American/European), Greeks, implied vol
- bonds: coupon bond pricing, YTM, accrual, duration/convexity
- portfolio: portfolio return/variance/Sharpe, weight constraints, holdings
- optimization: random-search mean-variance optimizers + efficient frontier
- statistics: covariance/correlation, linear solver, OLS regression
- factors: CAPM and Fama-French 3/5 factor models
- risk_metrics: return-series analytics, drawdown, VaR/CVaR
- valuation: DCF, Gordon growth, dividend discount models, WACC, market multiples
- indicators: moving averages, MACD, RSI, KDJ, Bollinger, ATR, volume indicators
- scenarios: bond yield shocks + option spot/vol grid
- config: solver/optimizer defaults, env overrides, logging setup
- errors: exception hierarchy
- utils: input validation + day count helpers
"""
