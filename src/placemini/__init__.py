"""Place Mini — a collaborative pixel canvas settled by periodic majority vote."""

__version__ = "0.1.0"
