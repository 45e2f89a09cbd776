"""
Utility functions for the geo-grid scheduler.

- time_utils: UTC/local time conversions shared by scheduling code
- grid_geometry: lat/lng sample grid around an origin
- process_lock: host-level exclusive lock file
"""
