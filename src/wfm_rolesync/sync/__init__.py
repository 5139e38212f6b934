"""
wfm_rolesync.sync

Cross-system role synchronization.

Responsibilities:
- Role policy (pure permit/deny decisions).
- The synchronization engine: local store first, directory second, compensating rollback.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Nothing in this package opens sessions or HTTP clients; adapters arrive through `sync.ports`.
