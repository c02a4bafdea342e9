"""
Safety core runtime configuration
"""

# Position watch
SAMPLER_CONFIG = {
    "high_accuracy": True,        # GPS-grade fixes
    "max_cached_age_s": 0.0,      # never accept cached fixes
    "watch_timeout_s": 5.0,       # platform timeout per fix
    "refresh_timeout_s": 5.0,     # forced refresh gives up after this
    "max_accuracy_m": None,       # publish everything, consumers filter
}

# Track recording
TRACK_CONFIG = {
    "max_accuracy_m": 30.0,       # worse fixes are noise
    "min_displacement_m": 5.0,    # spacing between recorded points
    "default_name_prefix": "Track",
}

# Anchor watch
ANCHOR_CONFIG = {
    "default_radius_m": 50.0,
    "store_key": "anchor",
}

# Peer radar
RADAR_CONFIG = {
    "channel": "radar",
    "broadcast_interval_s": 5.0,
    "sweep_interval_s": 10.0,
    "stale_after_s": 60.0,        # peers silent for 1 minute are dropped
}

# Collision detection
COLLISION_CONFIG = {
    "proximity_m": 50.0,
    "min_peer_speed_mps": 1.0,
    "motion_threshold_mps2": 25.0,
    "countdown_s": 30,
    "check_interval_s": 3.0,
    "tick_interval_s": 1.0,
    "alert_on_motion": True,
}

# Alert rendering
ALERT_CONFIG = {
    "repeat_interval_s": 3.0,
    "sample_rate_hz": 22050,
    "tone_frequencies_hz": [880.0, 1108.73, 880.0],
    "note_duration_s": 0.2,
    "gain": 0.1,
}

# Pressure-drop storm warning
WEATHER_CONFIG = {
    "threshold_hpa": -3.0,
    "lookback_samples": 3,
}

# Logging
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}

# Simulated run (main.py)
SIMULATION_CONFIG = {
    "base_lat": 38.6916,
    "base_lng": -9.4160,
    "user_id": "own-vessel",
    "peer_id": "peer-vessel",
    "fix_interval_s": 1.0,
    "fix_accuracy_m": 6.0,
    "drift_mps": 0.8,             # own boat drifting off the anchor
    "anchor_radius_m": 30.0,
    "peer_start_m": 400.0,        # peer approaches from this far north
    "peer_speed_mps": 3.0,
}


def session_sections() -> dict:
    """Component sections in the shape SessionConfig.from_dict expects."""
    return {
        "sampler": SAMPLER_CONFIG,
        "track": TRACK_CONFIG,
        "anchor": ANCHOR_CONFIG,
        "radar": RADAR_CONFIG,
        "collision": COLLISION_CONFIG,
        "alert": ALERT_CONFIG,
        "weather": WEATHER_CONFIG,
    }
