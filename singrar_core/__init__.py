"""
Singrar Safety Core Package.

Real-time vessel-safety monitoring: position ingestion, anchor-drift
geofence, peer radar with collision countdown, GPS track recording and
alerting.

Package structure:
- io: Platform and network collaborator contracts (position source,
  broadcast channel, motion events, record store)
- proto: Record and message schemas
- localization: Geodesy, fix quality, GeoSampler
- domain: Safety logic (track recorder, anchor watch, peer radar,
  collision detector, pressure-drop alert, alert dispatcher)
- metrics: Diagnostics, counters, histograms
- scheduling: Cancellable timers (asyncio and virtual clock)
- session: SafetySession wiring it all together
"""

__version__ = "0.1.0"
__author__ = "Singrar Team"
