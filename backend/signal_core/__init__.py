"""Core analysis logic: models, indicators, analyzers, scoring and risk.

This package contains pure business logic with no I/O dependencies
(no network, no clock-driven background work). It is shared between the
live engine (signal_app/) and the backtesting system (signal_backtest/).
"""
