"""
Edge processing pipeline: derived metrics, trends, anomalies and quality.
"""

from .limits import DEFAULT_LIMITS, PhysicalLimits
from .metrics import DerivedMetrics, comfort_score, compute, dew_point, heat_index
from .processor import EdgeProcessor
from .quality import QualityAssessment, QualityPolicy, QualityScorer, RangeCorrection, correct_range
from .reading import ComputedMetrics, DataQuality, ProcessedReading
from .trends import (
    AnomalyPolicy,
    Classification,
    HistoryTable,
    SensorHistory,
    Trend,
    TrendDetector,
)

__all__ = [
    "AnomalyPolicy",
    "Classification",
    "ComputedMetrics",
    "DEFAULT_LIMITS",
    "DataQuality",
    "DerivedMetrics",
    "EdgeProcessor",
    "HistoryTable",
    "PhysicalLimits",
    "ProcessedReading",
    "QualityAssessment",
    "QualityPolicy",
    "QualityScorer",
    "RangeCorrection",
    "SensorHistory",
    "Trend",
    "TrendDetector",
    "comfort_score",
    "compute",
    "correct_range",
    "dew_point",
    "heat_index",
]
