"""
Scheduling domain - Garage schedules and bookable time slots

- slot_rules.py: expand a schedule into template slots, validate requested times
- calendar_view.py: month/week arithmetic for the calendar endpoint
- service.py: schedule CRUD, slot listing, block/unblock, manual and moved slots
"""
