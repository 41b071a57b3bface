"""depalign - dependency graph resolution with conflict detection."""

__version__ = "0.1.0"
