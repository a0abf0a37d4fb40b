"""Prometheus scrape endpoint and a liveness probe."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, Response, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..metrics import latest_metrics

metrics_bp = Blueprint("metrics_bp", __name__)


@metrics_bp.get("/metrics")
def metrics():
    payload, content_type = latest_metrics()
    return Response(payload, mimetype=content_type)


@metrics_bp.get("/healthz")
def healthz():
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        current_app.logger.exception("Health check failed")
        return jsonify({"status": "degraded", "database": False}), HTTPStatus.SERVICE_UNAVAILABLE
    return jsonify({"status": "ok", "database": True})
