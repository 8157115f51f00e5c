"""
Core utilities shared across the portfolio service.

This package hosts configuration, password hashing, the mail adapter and
request throttling. Services depend on these primitives instead of reading
os.environ or talking to SMTP directly.
"""
