# backend/nearby_places/constants.py

"""
Global constants shared by the resolver, the session and the HTTP layer.
"""

USER_AGENT = "nearby-places/1.0 (+https://github.com/nearby-places/nearby-places)"

EARTH_RADIUS_M = 6_371_000.0

# Fresh-fix budgets per accuracy tier (seconds)
HIGH_ACCURACY_TIMEOUT_S = 15.0
LOW_POWER_TIMEOUT_S = 8.0

# ── Error codes surfaced to the UI ───────────────────────────────────────
PERMISSION_DENIED = "PERMISSION_DENIED"
LOCATION_DISABLED = "LOCATION_DISABLED"
LOCATION_UNAVAILABLE = "LOCATION_UNAVAILABLE"
UNKNOWN_ERROR = "UNKNOWN_ERROR"

ERROR_CODES = frozenset(
    {PERMISSION_DENIED, LOCATION_DISABLED, LOCATION_UNAVAILABLE, UNKNOWN_ERROR}
)
