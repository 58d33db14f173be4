"""
Dashboard - JSON API over a running TradingBot

Read endpoints are open. Mutating requests (sell, config edits) require
`Authorization: Bearer <DASHBOARD_SECRET>` when that env var is set.
"""

import functools
import os

from flask import Flask, jsonify, render_template_string, request

from src.core.errors import (
    BotStoppingError,
    ConfigError,
    InvalidInputError,
    NoLiquidityError,
    PositionNotFoundError,
    TradingError,
)

# HTTP status per trading failure; anything else is a failed upstream call
_ERROR_STATUS = (
    (PositionNotFoundError, 404),
    (InvalidInputError, 400),
    (NoLiquidityError, 409),
    (BotStoppingError, 503),
)

DASHBOARD_HTML = """<!doctype html>
<html>
<head>
  <title>Odds Trading Bot</title>
  <style>
    body { background: #0f1115; color: #d8dee9; font-family: -apple-system, sans-serif; margin: 40px; }
    h1 { font-weight: 500; font-size: 20px; }
    pre { background: #161a21; padding: 16px; border-radius: 6px; }
  </style>
</head>
<body>
  <h1>Odds Trading Bot</h1>
  <pre id="status">Loading...</pre>
  <script>
    async function refresh() {
      const resp = await fetch('/api/status');
      document.getElementById('status').textContent = JSON.stringify(await resp.json(), null, 2);
    }
    refresh();
    setInterval(refresh, 5000);
  </script>
</body>
</html>
"""


def _error_status(error: TradingError) -> int:
    for error_class, status in _ERROR_STATUS:
        if isinstance(error, error_class):
            return status
    return 502


def create_app(bot):
    app = Flask(__name__)

    # --- Authentication ---
    # Set DASHBOARD_SECRET env var to require auth on all mutating endpoints.
    # Without it, endpoints are open (local dev only).
    DASHBOARD_SECRET = os.environ.get("DASHBOARD_SECRET", "").strip()

    def require_auth(f):
        """Decorator: require Bearer token on mutating (POST/PUT/DELETE) requests when DASHBOARD_SECRET is set.
        GET requests pass through so read-only endpoints sharing a route are unaffected."""
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            if not DASHBOARD_SECRET:
                return f(*args, **kwargs)
            if request.method == "GET":
                return f(*args, **kwargs)
            auth = request.headers.get("Authorization", "")
            if auth == f"Bearer {DASHBOARD_SECRET}":
                return f(*args, **kwargs)
            return jsonify({"error": "Unauthorized"}), 401
        return decorated

    @app.route('/')
    def dashboard():
        return render_template_string(DASHBOARD_HTML)

    @app.route('/api/status')
    def api_status():
        return jsonify(bot.get_status())

    @app.route('/api/positions')
    def api_positions():
        return jsonify([p.to_dict() for p in bot.positions.get_active_positions()])

    @app.route('/api/history')
    def api_history():
        return jsonify([entry.to_dict() for entry in bot.positions.get_trading_history()])

    @app.route('/api/odds')
    def api_odds():
        return jsonify(bot.comparison.get_odds_summary())

    @app.route('/api/opportunities')
    def api_opportunities():
        return jsonify([opp.to_dict() for opp in bot.get_opportunities()])

    @app.route('/api/sell/<token_id>', methods=['POST'])
    @require_auth
    def api_sell(token_id):
        """Sell all of a position, or {"amount": x} of it"""
        data = request.get_json(silent=True) or {}
        amount = data.get("amount")
        if amount is not None:
            try:
                amount = float(amount)
            except (TypeError, ValueError):
                return jsonify({"error": f"Invalid amount: {amount!r}"}), 400

        try:
            result = bot.sell_position(token_id, amount)
        except TradingError as e:
            print(f"[WEB] Sell {token_id} failed: {e}")
            return jsonify({"error": str(e), "error_type": e.error_type.value}), _error_status(e)

        return jsonify({"success": True, "result": result})

    @app.route('/api/trading-config', methods=['GET', 'POST'])
    @require_auth
    def api_trading_config():
        """GET returns the editable trading settings; POST updates and persists them."""
        if request.method == 'POST':
            data = request.get_json(silent=True) or {}
            try:
                config = bot.update_trading_config(data)
            except ConfigError as e:
                return jsonify({"error": str(e)}), 400
            print(f"[WEB] Trading config updated: {sorted(data)}")
            return jsonify(config)

        return jsonify(bot.get_trading_config())

    return app
