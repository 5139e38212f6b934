"""
wfm_rolesync.auth

Authentication/authorization package.

Responsibilities:
- Role enumeration and the `Principal` snapshot.
- JWT helpers and FastAPI auth dependencies.
"""

# Package marker.
