"""
Interactive console for the trading bot

Each command maps to one TradingBot read or write; rendering is the only
logic here.
"""

from typing import Callable, List

from ..core.errors import TradingError
from ..sports.odds import format_american_odds, format_implied_probability, format_price_odds

HELP_TEXT = """Commands:
  status                 - Show bot status
  positions              - Show active positions
  history                - Show trading history
  odds                   - Show current odds comparisons
  opportunities          - Show trading opportunities
  sell <id> [amount]     - Sell position by token ID (all if no amount)
  help                   - Show this help
  exit                   - Stop the bot and exit"""

# History lines shown by the history command
HISTORY_LIMIT = 10


class TradingConsole:
    """
    Line-oriented REPL over a TradingBot.

    `read` and `write` default to input()/print() and are swapped out in tests.
    """

    PROMPT = "odds-bot> "

    def __init__(self, bot, read: Callable[[str], str] = input, write: Callable[[str], None] = print):
        self.bot = bot
        self.read = read
        self.write = write

        self.commands = {
            "status": self.show_status,
            "positions": self.show_positions,
            "history": self.show_history,
            "odds": self.show_odds,
            "opportunities": self.show_opportunities,
            "sell": self.sell,
            "help": self.show_help,
        }

    def run(self):
        """Read commands until exit/quit or end of input"""
        self.write("\n=== Odds Trading Bot CLI ===")
        self.write(HELP_TEXT + "\n")
        while True:
            try:
                line = self.read(self.PROMPT)
            except EOFError:
                self.write("")
                break
            if not self.handle_command(line):
                break
        self.write("Goodbye!")

    def handle_command(self, line: str) -> bool:
        """Run one command line. Returns False when the console should exit."""
        parts = line.strip().split()
        if not parts:
            return True

        command, args = parts[0].lower(), parts[1:]
        if command in ("exit", "quit"):
            self.write("Stopping bot...")
            return False

        handler = self.commands.get(command)
        if handler is None:
            self.write(f"Unknown command: {command}. Type 'help' for available commands.")
            return True

        self.write(handler(*args) if command == "sell" else handler())
        return True

    # === Commands ===

    def show_help(self) -> str:
        return HELP_TEXT

    def show_status(self) -> str:
        status = self.bot.get_status()
        data = status["data_status"]
        conn = status["connection_status"]
        lines = [
            "",
            "=== Bot Status ===",
            f"Running: {status['is_running']}",
            f"Active Positions: {status['active_positions']}",
            f"Total Position Value: ${status['total_position_value']:.2f} "
            f"(cap ${status['max_position_size']:.2f})",
            f"Trading History: {status['trading_history']} trades",
            f"Odds Games: {data['odds_games']}",
            f"Price Tokens: {data['price_tokens']}",
            f"Last Update: {data['last_update'] or 'never'}",
            f"Connection Status: {'Connected' if conn['is_connected'] else 'Disconnected'}",
            f"Reconnect Attempts: {conn['reconnect_attempts']}",
        ]
        if status["fatal"]:
            lines.append(f"FATAL: {status['fatal_reason']}")
        if status["recent_errors"]:
            last = status["recent_errors"][-1]
            lines.append(f"Last Error: [{last['error_type']}] {last['message']}")
        return "\n".join(lines)

    def show_positions(self) -> str:
        positions = self.bot.positions.get_active_positions()
        lines = ["", "=== Active Positions ==="]
        if not positions:
            lines.append("No active positions")
            return "\n".join(lines)

        for i, position in enumerate(positions, 1):
            game = position.game_info.display_name if position.game_info else "Unknown game"
            lines.append(f"{i}. Token ID: {position.token_id}")
            lines.append(f"   Game: {game}")
            lines.append(f"   Amount: ${position.amount:.2f} of ${position.initial_amount:.2f}")
            lines.append(f"   Buy Price: {position.entry_price:.3f}")
            lines.append(f"   Buy Time: {position.entry_time:%Y-%m-%d %H:%M:%S} UTC")
            lines.append(f"   Status: {position.status.value}")
            lines.append("")
        return "\n".join(lines)

    def show_history(self) -> str:
        history = self.bot.positions.get_trading_history()
        lines = ["", "=== Trading History ==="]
        if not history:
            lines.append("No trading history")
            return "\n".join(lines)

        recent = history[-HISTORY_LIMIT:]
        for i, entry in enumerate(recent, 1):
            lines.append(f"{i}. {entry.action.upper()} - Token: {entry.token_id}")
            lines.append(f"   Amount: ${entry.amount:.2f}")
            lines.append(f"   Price: {entry.price:.3f}")
            lines.append(f"   Time: {entry.timestamp:%Y-%m-%d %H:%M:%S} UTC")
            if entry.value_analysis:
                lines.append(f"   Expected Value: {entry.value_analysis.value:.4f}")
                lines.append(f"   Confidence: {entry.value_analysis.confidence.value}")
            lines.append("")
        return "\n".join(lines)

    def show_odds(self) -> str:
        summary = self.bot.comparison.get_odds_summary()
        lines = [
            "",
            "=== Current Odds Summary ===",
            f"Odds Games: {summary['odds_games']}",
            f"Price Tokens: {summary['price_tokens']}",
            f"Opportunities: {summary['opportunities']}",
            f"Last Update: {summary['last_update'] or 'never'}",
        ]
        return "\n".join(lines)

    def show_opportunities(self) -> str:
        opportunities = self.bot.get_opportunities()
        lines = ["", "=== Trading Opportunities ==="]
        if not opportunities:
            lines.append("No trading opportunities found")
            return "\n".join(lines)

        for i, opp in enumerate(opportunities, 1):
            outcome = opp.value_analysis.outcome
            price = format_price_odds(opp.match.price.price)
            lines.append(f"{i}. {opp.match.game_info.display_name} ({opp.token_id})")
            lines.append(f"   Sportsbook: {outcome.team} {format_american_odds(outcome.american_odds)} "
                         f"({format_implied_probability(outcome.implied_probability)})")
            lines.append(f"   Polymarket: {price['cents']} = {price['american']} "
                         f"({price['implied_probability']})")
            lines.append(f"   Edge: {opp.edge*100:.2f}%  Confidence: {opp.confidence.value}")
            lines.append("")
        return "\n".join(lines)

    def sell(self, *args: str) -> str:
        if not args or len(args) > 2:
            return "Usage: sell <token_id> [amount]"

        token_id = args[0]
        amount = None
        if len(args) == 2:
            try:
                amount = float(args[1])
            except ValueError:
                return f"Invalid amount: {args[1]}"

        self.write(f"Selling position for token {token_id}...")
        try:
            result = self.bot.sell_position(token_id, amount)
        except TradingError as e:
            return f"Error selling position: {e}"

        lines: List[str] = ["Sell order placed successfully"]
        order_id = result.get("order_id") or result.get("orderID") or result.get("id")
        if order_id:
            lines.append(f"Order ID: {order_id}")
        return "\n".join(lines)
