"""
wfm_rolesync.services

Service-layer package.

Responsibilities:
- Own transaction boundaries for the local role store, audit log and presence.
- Compose the synchronization engine from its adapters.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Adapters here satisfy the protocols in `wfm_rolesync.sync.ports`; tests swap in fakes.
