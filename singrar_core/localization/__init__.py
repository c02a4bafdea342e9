"""
Localization Module: Geodesy, fix quality, position ingestion.

Key classes:
- GeoSampler: Platform position watch -> PositionSample fan-out
- SignalStrength: GPS signal indicator from fix accuracy
- haversine_m / haversine_many: Great-circle distances
"""

from .geodesy import (
    EARTH_RADIUS_M,
    haversine_m,
    haversine_many,
    track_length_m,
    offset_position,
)
from .fix_quality import (
    SignalStrength,
    classify_accuracy,
    is_accurate_enough,
)
from .geo_sampler import (
    GeoSampler,
    GeoSamplerConfig,
)

__all__ = [
    'EARTH_RADIUS_M',
    'haversine_m',
    'haversine_many',
    'track_length_m',
    'offset_position',
    'SignalStrength',
    'classify_accuracy',
    'is_accurate_enough',
    'GeoSampler',
    'GeoSamplerConfig',
]
