"""
High-level use cases for the portfolio API.

Each service module orchestrates record stores and adapters to implement the
business rules (register, activate, follow, edit owned records, etc.).

Routers (FastAPI endpoints) call these services instead of touching the
database or sessions directly.
"""
