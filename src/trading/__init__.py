from .risk_manager import RiskManager, SizingPolicy
from .position_manager import PositionManager
from .trading_bot import TradingBot
