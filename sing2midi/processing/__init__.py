"""Processing layer - Note-level reconciliation.

This layer turns candidate notes and live evidence into a final sequence:
- Reconciliation of transcriber notes with live detections (stages A-E)
- Optional pitch contour smoothing
- Live-only note building (growing notes)
"""

from .reconcile import Reconciler, ReconcileConfig, ReconcileStats, reconcile
from .grouping import DetectionGrouper, GroupingConfig, group_detections

__all__ = [
    "Reconciler",
    "ReconcileConfig",
    "ReconcileStats",
    "reconcile",
    "DetectionGrouper",
    "GroupingConfig",
    "group_detections",
]
