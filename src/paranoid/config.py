"""
Paranoid Configuration

Environment-driven defaults for soft-delete behaviour.
"""

import os

# Attribute holding the deletion timestamp when acts_as_paranoid is called without `with_`
DEFAULT_DELETED_ATTRIBUTE = os.getenv("PARANOID_DELETED_ATTRIBUTE", "deleted_at")

# "utc" stores naive UTC timestamps, "local" stores naive local time
DEFAULT_TIMEZONE = os.getenv("PARANOID_DEFAULT_TIMEZONE", "utc").lower()
