"""HTTP endpoints for submitting and inspecting notification tasks."""

from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib.parse import urlsplit

from flask import Flask, Response, jsonify, request

from notifier.model import NotificationTask
from notifier.repository import TaskStore

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("POST", "PUT", "PATCH")
DEFAULT_MAX_RETRIES = 3
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

_INT_RE = re.compile(r"[+-]?[0-9]+")
_SCHEME_RE = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*")

_Reply = tuple[Response, int]


class _InvalidRequest(ValueError):
    """A submitted request body that does not describe a valid task."""


def _parse_int(text: str | None) -> int | None:
    """Parse a signed decimal 64-bit integer; return None if ``text`` is not one."""
    if text is None or not _INT_RE.fullmatch(text):
        return None
    value = int(text)
    return value if -(2**63) <= value < 2**63 else None


def _is_url(value: str) -> bool:
    """Accept absolute URLs: a scheme followed by a non-empty remainder."""
    text = value.split("#", 1)[0]
    if any(ch.isspace() or not ch.isprintable() for ch in text):
        return False
    scheme, sep, rest = text.partition(":")
    if not (sep and rest and _SCHEME_RE.fullmatch(scheme)):
        return False
    try:
        urlsplit(text).port
    except ValueError:
        return False
    return True


def _field(payload: dict[str, Any], name: str, kind: type, default: Any) -> Any:
    value = payload.get(name)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, kind):
        raise _InvalidRequest(f"{name} must be of type {kind.__name__}")
    return value


def _parse_submit(payload: Any) -> NotificationTask:
    """Validate a submitted JSON document and build the task it describes."""
    if not isinstance(payload, dict):
        raise _InvalidRequest("request body must be a JSON object")

    target_url = _field(payload, "target_url", str, "")
    http_method = _field(payload, "http_method", str, "")
    headers = _field(payload, "headers", dict, {})
    if not all(isinstance(v, str) for v in headers.values()):
        raise _InvalidRequest("headers must be an object of strings")
    max_retries = _field(payload, "max_retries", int, 0)

    if not target_url or not _is_url(target_url):
        raise _InvalidRequest("target_url is required and must be a valid URL")
    if http_method not in ALLOWED_METHODS:
        raise _InvalidRequest(f"http_method must be one of {' '.join(ALLOWED_METHODS)}")

    return NotificationTask(
        target_url=target_url,
        http_method=http_method,
        headers=json.dumps(headers, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        if headers
        else "",
        body=_field(payload, "body", str, ""),
        source_system=_field(payload, "source_system", str, ""),
        trace_id=_field(payload, "trace_id", str, ""),
        max_retries=max_retries if max_retries > 0 else DEFAULT_MAX_RETRIES,
    )


def _error(message: str, status: int) -> _Reply:
    return jsonify({"error": message}), status


class Handler:
    """Request handlers backed by a task store."""

    def __init__(self, repo: TaskStore) -> None:
        self.repo = repo

    def submit(self) -> _Reply:
        """Accept a notification request, store it and answer 202 with its id."""
        try:
            task = _parse_submit(json.loads(request.get_data()))
        except ValueError as exc:
            return _error(str(exc), 400)
        try:
            self.repo.create(task)
        except Exception:
            logger.exception("failed to save task")
            return _error("failed to save task", 500)
        return jsonify({"task_id": task.id}), 202

    def manual_retry(self, task_id: str) -> _Reply:
        """Put a FAILED task back in the delivery queue."""
        parsed = _parse_int(task_id)
        if parsed is None:
            return _error("invalid task id", 400)
        try:
            self.repo.reset_to_retry(parsed)
        except Exception:
            return _error("task not found or not in FAILED status", 404)
        return jsonify({"message": "task reset to PENDING"}), 200

    def list_tasks(self) -> _Reply:
        """List tasks, optionally filtered by status, one page at a time."""
        status = request.args.get("status", "")
        page = _parse_int(request.args.get("page", str(DEFAULT_PAGE))) or 0
        page_size = _parse_int(request.args.get("page_size", str(DEFAULT_PAGE_SIZE))) or 0
        if page <= 0:
            page = DEFAULT_PAGE
        if not 0 < page_size <= MAX_PAGE_SIZE:
            page_size = DEFAULT_PAGE_SIZE
        try:
            tasks, total = self.repo.list_by_status(status, page, page_size)
        except Exception as exc:
            return _error(str(exc), 500)
        return jsonify(
            {
                "total": total,
                "page": page,
                "page_size": page_size,
                "tasks": [task.to_dict() for task in tasks or []],
            }
        ), 200

    def get_task(self, task_id: str) -> _Reply:
        """Return one task in full."""
        parsed = _parse_int(task_id)
        if parsed is None:
            return _error("invalid task id", 400)
        try:
            task = self.repo.get_by_id(parsed)
        except Exception:
            return _error("task not found", 404)
        return jsonify(task.to_dict()), 200


def register_routes(app: Flask, handler: Handler) -> None:
    """Attach the notification endpoints under /api/v1."""
    prefix = "/api/v1/notifications"
    app.add_url_rule(prefix, "submit", handler.submit, methods=["POST"])
    app.add_url_rule(prefix, "list_tasks", handler.list_tasks, methods=["GET"])
    app.add_url_rule(f"{prefix}/<task_id>", "get_task", handler.get_task, methods=["GET"])
    app.add_url_rule(
        f"{prefix}/<task_id>/retry", "manual_retry", handler.manual_retry, methods=["POST"]
    )


def create_app(repo: TaskStore) -> Flask:
    """Build a Flask application serving the notification endpoints."""
    app = Flask(__name__)
    register_routes(app, Handler(repo))
    return app