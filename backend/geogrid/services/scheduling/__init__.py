"""
Scheduling services: business hours, slot calculation and the schedule store.
"""
