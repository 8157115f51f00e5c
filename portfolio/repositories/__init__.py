"""
Persistence adapters.

Services depend on the RecordStore protocol (base.py); SQLRecordStore is the
SQLAlchemy implementation used by the application.
"""
