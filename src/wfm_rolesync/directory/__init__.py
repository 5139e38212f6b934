"""
wfm_rolesync.directory

Identity directory boundary.

Responsibilities:
- Typed configuration for directory credentials and role scopes.
- Client for the directory's OAuth + Graph-style REST API.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# The engine depends on this boundary through `sync.ports.RoleDirectory`, not on httpx.
