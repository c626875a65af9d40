"""Formula Status Trigger - maps formula column results onto status columns."""
__version__ = "0.1.0"
