"""
Services module for the geo-grid scheduler.

Services hold the business logic between the database operations and the
workers. They log; the database layer does not.

Available Services:
- scheduling.business_hours_service: open windows from recurring business hours
- scheduling.slot_calculator: next legal run instant inside business hours
- scheduling.schedule_service: per-business weekly schedule state machine
- keyword_selection_service: origin zone and keyword choice for a run
- measurement_config_service: DB-backed measurement configuration provider
- run_claimer_service: due schedule claiming and run creation
- run_completion_service: marks runs done once every point is measured
- collaborators: protocols for the external search collaborators
"""
