from placemini.history.frames import HistoryLog

__all__ = ["HistoryLog"]
