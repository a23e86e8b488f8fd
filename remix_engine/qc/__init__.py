"""
Quality Control module for evaluating recordings and finished mixes.
"""
from remix_engine.qc.qc import analyze
from remix_engine.qc.thresholds import QC_THRESHOLDS

__all__ = ["analyze", "QC_THRESHOLDS"]
