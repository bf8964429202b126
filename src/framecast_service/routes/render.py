"""HTTP routes for submitting render jobs and collecting their output."""
from __future__ import annotations

import logging
from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request, send_file

from framecast.exceptions import (
    ArtifactNotFoundError,
    FramecastError,
    JobNotFoundError,
    JobStateError,
    ShutdownError,
    ValidationError,
)

from ..services.render_session import RenderRuntime, get_runtime

LOGGER = logging.getLogger(__name__)

api_bp = Blueprint("framecast_api", __name__)

_ERROR_STATUS = (
    (ValidationError, HTTPStatus.BAD_REQUEST),
    (JobNotFoundError, HTTPStatus.NOT_FOUND),
    (ArtifactNotFoundError, HTTPStatus.NOT_FOUND),
    (JobStateError, HTTPStatus.BAD_REQUEST),
    (ShutdownError, HTTPStatus.SERVICE_UNAVAILABLE),
)


def _runtime() -> RenderRuntime:
    return get_runtime(current_app)


def error_response(message: str, status: HTTPStatus):
    return jsonify({"error": message, "status": status.value}), status


@api_bp.errorhandler(FramecastError)
def handle_framecast_error(exc: FramecastError):
    for error_type, status in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return error_response(str(exc), status)
    LOGGER.exception("Unhandled render service error")
    return error_response(str(exc) or "Internal server error", HTTPStatus.INTERNAL_SERVER_ERROR)


@api_bp.route("/", methods=["GET"])
def index_endpoint():
    return jsonify(_runtime().index_payload()), HTTPStatus.OK


@api_bp.route("/render", methods=["POST"])
def render_endpoint():
    payload = request.get_json(silent=True)
    result = _runtime().submit(payload)
    return jsonify(result), HTTPStatus.OK


@api_bp.route("/status/<string:job_id>", methods=["GET"])
def status_endpoint(job_id: str):
    return jsonify(_runtime().status_payload(job_id)), HTTPStatus.OK


@api_bp.route("/download/<string:job_id>", methods=["GET"])
def download_endpoint(job_id: str):
    artifact = _runtime().artifact(job_id)
    return send_file(
        artifact.path,
        mimetype=artifact.content_type,
        as_attachment=True,
        download_name=artifact.filename,
        conditional=True,
    )


@api_bp.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify(_runtime().health_payload()), HTTPStatus.OK


@api_bp.route("/formats", methods=["GET"])
def formats_endpoint():
    return jsonify(_runtime().formats_payload()), HTTPStatus.OK


__all__ = ["api_bp", "error_response"]
