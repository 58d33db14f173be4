#!/usr/bin/env python3
"""
Odds Trading Bot - Main Entry Point

Usage:
    python app.py                    # Bot with interactive console
    python app.py --web              # Bot with JSON dashboard on port 5050
    python app.py --web --port 8080  # Custom port

Exit code is 1 when the bot stops on a fatal condition (odds feed
reconnect budget spent, unhandled error on a worker thread).
"""

import os
import signal
import sys
import threading

# Add src to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from src.cli.console import TradingConsole
from src.core.config import apply_saved_overrides, load_config
from src.core.errors import ConfigError
from src.trading.trading_bot import TradingBot


def install_fault_handler(bot: TradingBot):
    """Treat an uncaught exception on any thread as a shutdown trigger"""
    def excepthook(args):
        name = args.thread.name if args.thread else "unknown"
        print(f"[STARTUP] Unhandled error in thread {name}: {args.exc_type.__name__}: {args.exc_value}")
        bot.mark_fatal(f"Unhandled error in thread {name}: {args.exc_value}")

    threading.excepthook = excepthook


def start_dashboard(bot: TradingBot, port: int) -> threading.Thread:
    from src.web.app import create_app

    app = create_app(bot)
    thread = threading.Thread(
        target=app.run,
        kwargs={"host": "0.0.0.0", "port": port, "debug": False, "use_reloader": False},
        name="dashboard",
        daemon=True,
    )
    thread.start()
    print(f"[WEB] Dashboard on http://localhost:{port}")
    return thread


def start_console(bot: TradingBot, shutdown: threading.Event) -> threading.Thread:
    def run():
        TradingConsole(bot).run()
        shutdown.set()

    thread = threading.Thread(target=run, name="console", daemon=True)
    thread.start()
    return thread


def main() -> int:
    # Railway/Heroku set PORT env var; fall back to 5050 for local dev
    port = int(os.environ.get('PORT', 5050))
    web = False

    # Parse command line args (override env var)
    for i, arg in enumerate(sys.argv):
        if arg == '--port' and i + 1 < len(sys.argv):
            port = int(sys.argv[i + 1])
        elif arg == '--web':
            web = True

    try:
        config = load_config()
    except ConfigError as e:
        print(f"[CONFIG] {e}")
        return 1
    apply_saved_overrides(config.trading)
    print("[CONFIG] Configuration validated successfully")

    print(f"""
    ╔═══════════════════════════════════════════════════════╗
    ║               ODDS TRADING BOT                        ║
    ╠═══════════════════════════════════════════════════════╣
    ║  Tracking {config.trading.tracked_sport:<10} min edge {config.trading.min_value_threshold:<6.1%}               ║
    ║  Press Ctrl+C to stop                                 ║
    ╚═══════════════════════════════════════════════════════╝
    """)

    bot = TradingBot(config)
    shutdown = threading.Event()

    def handle_signal(signum, frame):
        print(f"[STARTUP] Received {signal.Signals(signum).name}, shutting down gracefully...")
        shutdown.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)
    install_fault_handler(bot)

    bot.start()
    if web:
        start_dashboard(bot, port)
    else:
        start_console(bot, shutdown)

    while not shutdown.wait(1):
        if bot.is_fatal:
            print(f"[STARTUP] Shutting down: {bot.fatal_reason}")
            break

    bot.stop()
    return 1 if bot.is_fatal else 0


if __name__ == '__main__':
    sys.exit(main())
