"""
Geo-grid search rank scheduler.

Schedules one measurement per business per week inside its business hours,
expands each due schedule into a grid of sample points and measures the
business's search rank at every point with a bounded worker pool.
"""

__version__ = "1.0.0"
