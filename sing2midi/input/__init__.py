"""Input layer - Audio loading.

This layer reads recorded or uploaded takes:
- Mono loading and resampling
- Peak normalization
- Header inspection
"""

from .loader import AudioInfo, AudioLoader

__all__ = [
    "AudioInfo",
    "AudioLoader",
]
