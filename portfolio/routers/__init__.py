"""
FastAPI routers grouped by domain (users, owned records).

Each module exposes an APIRouter that app.py includes. Routers translate
requests into service calls; service errors are mapped to status codes by the
handler registered in app.py.
"""
