"""
Services Layer

Match lifecycle logic behind the runtime routes:
- Operate on a MatchStore, never on HTTP request/response objects
- Raise LifecycleError subclasses; routes map them to status codes
- Write resource idle state only through the ResourceLedger
"""
