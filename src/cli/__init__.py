from .console import TradingConsole
