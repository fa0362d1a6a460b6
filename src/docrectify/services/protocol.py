"""
JSON message protocol.

Requests and responses are flat JSON objects tagged by ``type``:

    {type: "process", base64, corners, mode}  -> {type: "result", base64, width, height, srcWidth, srcHeight}
    {type: "detect", base64}                  -> {type: "corners", corners}
    {type: "previewFilters", base64, corners} -> {type: "filterPreviews", bw, gray, color}

Malformed requests, engine errors and unexpected failures all become
``{type: "error", message}``, so one bad request never ends the server.
"""

import json
import logging
from collections.abc import Callable
from typing import Any, TextIO

from docrectify.services.config import EnhanceMode
from docrectify.services.scanner import DocumentScanner
from docrectify.utils.exceptions import DocRectifyError, ValidationError

logger = logging.getLogger(__name__)

READY_MESSAGE = {"type": "ready"}


def error_response(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}


def _require_str(message: dict, name: str) -> str:
    value = message.get(name)
    if not isinstance(value, str) or not value:
        raise ValidationError(name, "expected a non-empty string")
    return value


def _handle_process(message: dict, scanner: DocumentScanner) -> dict[str, Any]:
    result = scanner.rectify(
        _require_str(message, "base64"),
        message.get("corners"),
        message.get("mode") or EnhanceMode.BW,
    )
    return {
        "type": "result",
        "base64": result.to_base64(".png"),
        "width": result.width,
        "height": result.height,
        "srcWidth": result.src_width,
        "srcHeight": result.src_height,
    }


def _handle_detect(message: dict, scanner: DocumentScanner) -> dict[str, Any]:
    quad = scanner.detect(_require_str(message, "base64"))
    return {"type": "corners", "corners": quad.to_dict() if quad is not None else None}


def _handle_preview_filters(message: dict, scanner: DocumentScanner) -> dict[str, Any]:
    previews = scanner.preview_filters(_require_str(message, "base64"), message.get("corners"))
    encoded = previews.encode_all(scanner.config.preview_jpeg_quality)
    return {"type": "filterPreviews", **encoded}


HANDLERS: dict[str, Callable[[dict, DocumentScanner], dict[str, Any]]] = {
    "process": _handle_process,
    "detect": _handle_detect,
    "previewFilters": _handle_preview_filters,
}


def handle_message(message: dict | str | bytes, scanner: DocumentScanner) -> dict[str, Any]:
    """Dispatch one request and build its response.

    Args:
        message: Request as a dict or a JSON document
        scanner: Engine serving the request

    Returns:
        Response dict; errors are reported as ``{"type": "error", ...}``
    """
    if isinstance(message, (str, bytes)):
        try:
            message = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return error_response(f"Invalid message: {e}")

    if not isinstance(message, dict):
        return error_response("Invalid message: expected a JSON object")

    msg_type = message.get("type")
    handler = HANDLERS.get(msg_type) if isinstance(msg_type, str) else None
    if handler is None:
        return error_response(f"Unknown message type: {msg_type!r}")

    try:
        return handler(message, scanner)
    except DocRectifyError as e:
        logger.warning(f"{msg_type} failed: {e}")
        return error_response(str(e))
    except Exception as e:
        logger.exception(f"{msg_type} failed unexpectedly")
        return error_response(f"Internal error: {e}")


def serve_lines(
    input_stream: TextIO,
    output_stream: TextIO,
    scanner: DocumentScanner,
    announce_ready: bool = False,
) -> int:
    """Serve one JSON request per input line, one JSON response per output line.

    Blank lines are skipped.

    Args:
        input_stream: Source of request lines
        output_stream: Destination for response lines
        scanner: Engine serving the requests
        announce_ready: Write ``{"type": "ready"}`` before reading

    Returns:
        Number of requests handled
    """

    def emit(payload: dict[str, Any]) -> None:
        output_stream.write(json.dumps(payload) + "\n")
        output_stream.flush()

    if announce_ready:
        emit(READY_MESSAGE)

    handled = 0
    for line in input_stream:
        line = line.strip()
        if not line:
            continue
        emit(handle_message(line, scanner))
        handled += 1

    logger.debug(f"Input closed after {handled} requests")
    return handled
