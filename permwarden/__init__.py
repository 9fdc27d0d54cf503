"""permwarden: per-permission authority rules and the permission editing list."""

__version__ = "0.1.0"
