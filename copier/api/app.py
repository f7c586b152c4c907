"""
Delivery API - Serves stored signals to subscriber clients.

Endpoints:
- GET    /signals?subscriberId=S        latest signals (max 10)
- DELETE /signals/<id>?subscriberId=S   delete one of S's signals
- GET    /risk?subscriberId=S           current risk multiplier
- PUT    /risk?subscriberId=S           change risk multiplier
- GET    /subscription?subscriberId=S   subscription status
- POST   /webhook                       chat platform updates

Every subscriber endpoint is rate limited per subscriberId.
"""

import hmac
import logging
from functools import wraps
from typing import TYPE_CHECKING

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from copier.api.delivery import SignalNotFound, SignalOwnershipError
from copier.errors import (
    NotSubscribedError,
    RateLimitExceeded,
    StoreError,
    ValidationError,
)

if TYPE_CHECKING:
    from copier.service import CopierServices

logger = logging.getLogger(__name__)


def get_subscriber_id():
    """subscriberId from query string or JSON body; userId is accepted as an alias."""
    subscriber_id = request.args.get("subscriberId") or request.args.get("userId")
    if not subscriber_id:
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            subscriber_id = body.get("subscriberId") or body.get("userId")
    if subscriber_id is None:
        return None
    return str(subscriber_id).strip() or None


def create_app(services: "CopierServices") -> Flask:
    """Create the Flask app around a built service graph."""
    app = Flask(__name__)
    CORS(app)
    app.config["COPIER_SERVICES"] = services

    delivery = services.delivery
    limiter = services.rate_limiter

    def rate_limited(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            subscriber_id = get_subscriber_id()
            limiter.enforce(subscriber_id)
            return view(subscriber_id, *args, **kwargs)

        return wrapper

    # Error handling

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return jsonify({"success": False, "error": str(e)}), 400

    @app.errorhandler(NotSubscribedError)
    def handle_not_subscribed(e):
        return jsonify({"success": False, "error": "Not subscribed"}), 404

    @app.errorhandler(RateLimitExceeded)
    def handle_rate_limit(e):
        response = jsonify({"success": False, "error": str(e)})
        response.headers["Retry-After"] = str(max(1, int(e.retry_after + 0.999)))
        return response, 429

    @app.errorhandler(StoreError)
    def handle_store_error(e):
        logger.error(f"Store failure on {request.method} {request.path}: {e}", exc_info=True)
        return jsonify({"success": False, "error": "Internal server error"}), 500

    @app.errorhandler(404)
    def handle_not_found(e):
        return jsonify({
            "success": False,
            "error": "Not found",
            "path": request.path,
            "message": "The requested endpoint does not exist",
        }), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(e):
        return jsonify({"success": False, "error": "Method not allowed"}), 405

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return jsonify({"success": False, "error": e.name}), e.code
        logger.error(f"Unhandled error on {request.method} {request.path}: {e}", exc_info=True)
        return jsonify({"success": False, "error": "Internal server error"}), 500

    # Health

    @app.route("/")
    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "message": "Trade Copier Bot API is running",
            "endpoints": {
                "signals": "/signals?subscriberId=YOUR_ID",
                "subscription": "/subscription?subscriberId=YOUR_ID",
                "risk": "/risk?subscriberId=YOUR_ID",
                "webhook": "/webhook",
            },
        })

    # Signals

    @app.route("/signals", methods=["GET"])
    @rate_limited
    def list_signals(subscriber_id):
        limit = request.args.get("limit")
        if limit is not None:
            try:
                limit = int(limit)
            except ValueError:
                raise ValidationError("limit must be an integer")

        signals = delivery.list_signals(subscriber_id, limit)
        return jsonify({"success": True, "count": len(signals), "signals": signals})

    @app.route("/signals/<signal_id>", methods=["DELETE"])
    @rate_limited
    def delete_signal(subscriber_id, signal_id):
        try:
            delivery.delete_signal(signal_id, subscriber_id)
        except SignalOwnershipError:
            return jsonify({"success": False, "error": "Not allowed to delete this signal"}), 403
        except SignalNotFound:
            return jsonify({"success": False, "error": "Signal not found"}), 404
        return jsonify({"success": True, "message": "Signal deleted"})

    # Risk

    @app.route("/risk", methods=["GET"])
    @rate_limited
    def get_risk(subscriber_id):
        return jsonify({"success": True, "risk": delivery.get_risk(subscriber_id)})

    @app.route("/risk", methods=["PUT", "POST"])
    @rate_limited
    def set_risk(subscriber_id):
        body = request.get_json(silent=True) or {}
        raw = body.get("risk") if isinstance(body, dict) else None
        if raw is None:
            raw = request.args.get("risk")
        if raw is None or isinstance(raw, bool):
            raise ValidationError("risk required")
        try:
            risk = float(raw)
        except (TypeError, ValueError):
            raise ValidationError(f"risk must be a number, got {raw!r}")

        return jsonify({"success": True, "risk": delivery.set_risk(subscriber_id, risk)})

    # Subscription

    @app.route("/subscription", methods=["GET"])
    @rate_limited
    def get_subscription(subscriber_id):
        status = delivery.get_subscription(subscriber_id)
        return jsonify({"success": True, **status.to_dict()})

    # Chat platform webhook

    @app.route("/webhook", methods=["POST"])
    def webhook():
        expected = services.config.webhook_secret_token
        if expected:
            provided = request.headers.get("X-Telegram-Bot-Api-Secret-Token", "")
            if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
                logger.warning("Webhook call with invalid secret token")
                return jsonify({"ok": False, "error": "Forbidden"}), 403

        update = request.get_json(silent=True)
        if not isinstance(update, dict):
            return jsonify({"ok": False, "error": "Invalid update"}), 400

        try:
            services.dispatcher.dispatch_update(update)
        except Exception as e:
            # Acknowledge anyway so the platform does not redeliver forever
            logger.error(f"Webhook update {update.get('update_id')} failed: {e}", exc_info=True)
        return jsonify({"ok": True})

    return app
