"""Admission control for trade commands."""

from services.risk_engine.risk_manager import RejectReason, RiskManager, RiskResult, RiskState

__all__ = ["RejectReason", "RiskManager", "RiskResult", "RiskState"]
