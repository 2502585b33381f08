"""envup - idempotent developer environment provisioning."""

__version__ = "0.4.0"
