"""Walking-bus / bike-train activity session backend."""

__version__ = "1.0.0"
