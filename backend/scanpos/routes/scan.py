# Overview: Scanner ingestion and polling endpoints; parses input and returns JSON responses.

# backend/scanpos/routes/scan.py
"""
Scan queue API.

POST    scanner device submits a QR/barcode read
GET     POS client polls for scans it has not seen yet
DELETE  administrative reset of the queue
OPTIONS CORS preflight
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import get_scan_queue
from ..time_utils import millis_to_datetime, to_utc_z
from ..validation import ValidationError, UpstreamError, error_payload


scan_bp = Blueprint("scan", __name__, url_prefix="/api/scan")


def _payload_from(data: dict):
    # Older scanner firmware posts qr_code / scanner_id
    payload = data.get("payload", data.get("qr_code"))
    if isinstance(payload, (int, float)) and not isinstance(payload, bool):
        payload = str(payload)
    device_id = data.get("deviceId") or data.get("scanner_id")
    timestamp = data.get("timestamp")
    return payload, (str(device_id) if device_id is not None else None), timestamp


@scan_bp.route("", methods=["OPTIONS"])
def scan_preflight():
    return "", 200


@scan_bp.post("")
def submit_scan():
    """
    Queue a scan.

    Body: {payload, deviceId?, timestamp?}
    Returns 201 with the queued record id and extracted product code. The
    device timestamp is kept alongside, never in place of, the receive time.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "error": "Invalid JSON body", "field": "payload"}), 400

    payload, device_id, timestamp = _payload_from(data)

    try:
        record = get_scan_queue().ingest(payload, device_id=device_id, timestamp=timestamp)
    except ValidationError as e:
        return jsonify(error_payload(e)), 400
    except UpstreamError as e:
        current_app.logger.error("Scan queue write failed: %s", e)
        return jsonify(error_payload(e)), 500
    except Exception:
        current_app.logger.exception("Failed to queue scan")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return jsonify({
        "success": True,
        "id": record.id,
        "extractedCode": record.extracted_code,
        "deviceId": record.device_id,
        "receivedAt": to_utc_z(millis_to_datetime(record.created_at)),
        "deviceTimestamp": record.device_timestamp,
    }), 201


@scan_bp.get("")
def poll_scans():
    """Return every scan not yet delivered and mark it delivered."""
    try:
        scans = get_scan_queue().poll()
    except UpstreamError as e:
        current_app.logger.error("Scan queue poll failed: %s", e)
        return jsonify(error_payload(e)), 500
    except Exception:
        current_app.logger.exception("Failed to poll scans")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return jsonify({
        "success": True,
        "scans": [s.to_dict() for s in scans],
        "count": len(scans),
    }), 200


@scan_bp.delete("")
def clear_scans():
    try:
        get_scan_queue().clear()
    except UpstreamError as e:
        current_app.logger.error("Scan queue clear failed: %s", e)
        return jsonify(error_payload(e)), 500
    except Exception:
        current_app.logger.exception("Failed to clear scans")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return jsonify({"success": True, "cleared": True}), 200
