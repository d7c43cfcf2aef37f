"""Smart School Management System backend core."""

__version__ = "0.1.0"
