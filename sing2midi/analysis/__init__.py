"""Analysis layer - Frame-level signal analysis.

This layer turns raw audio frames into pitch evidence:
- Live (per-frame) YIN pitch tracking
- Session accumulation of live detections
"""

from .live import (
    LiveDetector,
    LiveDetectorConfig,
    LiveDetectionLog,
    detect_live_pitch,
)

__all__ = [
    "LiveDetector",
    "LiveDetectorConfig",
    "LiveDetectionLog",
    "detect_live_pitch",
]
