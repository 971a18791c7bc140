"""credvault - sealed credential vault with a tamper-evident audit trail."""

__version__ = "0.3.0"

__all__ = ["__version__"]
