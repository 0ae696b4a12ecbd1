from placemini.countdown.ticker import SettlementTicker

__all__ = ["SettlementTicker"]
