# Overview: Uniform success/error envelopes for every JSON response.

from __future__ import annotations

from typing import Any

from flask import jsonify, request

from .time_utils import utcnow, to_utc_z


def success(data: Any = None, message: str | None = None, status: int = 200):
    return jsonify({"success": True, "message": message, "data": data}), status


def error_response(status: int, error: str, message: str, errors: dict | None = None):
    body = {
        "success": False,
        "status": status,
        "error": error,
        "message": message,
        "path": request.path,
        "timestamp": to_utc_z(utcnow()),
    }
    if errors:
        body["errors"] = errors
    return jsonify(body), status


def paginated(items: list, *, page: int, per_page: int, total: int) -> dict:
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    return {
        "items": items,
        "count": len(items),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
