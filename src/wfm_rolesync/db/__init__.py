"""
wfm_rolesync.db

Persistence package (SQLAlchemy async).

Responsibilities:
- Provide ORM models, engine/session setup, and repositories for the local role store.
"""

# Package marker.
