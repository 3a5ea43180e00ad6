"""
Services Layer

Planning logic behind the HTTP routes:
- Accept domain inputs (ids, datetimes, the acting user) and a session
- Raise PlanningError subclasses, never HTTPException
- Each mutating entry point commits exactly once through database.atomic()
"""
