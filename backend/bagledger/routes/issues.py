# Overview: Flask API routes for bag issuance to clients; parses input and returns JSON responses.

"""
Bag Issuance API Routes

Drivers request to hand bags to a client; the client receives a one-time code
and the issuance only counts once that code is verified.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_tenant
from ..errors import BagLedgerError, InvalidArgumentError
from ..services import allocation_service, issuance_service, reporting_service
from ..time_utils import parse_date_bound
from ..validation import coerce_int, require_payload


issues_bp = Blueprint("bag_issues", __name__, url_prefix="/api/organization/bags/issues")


def _date_arg(name: str, *, end: bool = False):
    try:
        return parse_date_bound(request.args.get(name), end=end)
    except ValueError:
        raise InvalidArgumentError(f"{name} must be an ISO-8601 date")


@issues_bp.post("")
@require_tenant
def request_issuance_route():
    """
    Request an issuance of bags from a driver to a client.

    Request body:
    {
        "driver_id": 7,
        "client_id": 12,
        "number_of_bags": 5,
        "client_email": "client@example.com",  (optional, defaults to client's email)
        "notes": "Left at gate"  (optional)
    }

    Returns:
        201: Issue created, code sent to the client
        404: Driver or client not found
        409: Driver does not hold enough bags
    """
    try:
        data = require_payload(request.get_json(silent=True))
        issue = issuance_service.request_issuance(
            g.org_id,
            coerce_int(data.get("driver_id"), "driver_id"),
            coerce_int(data.get("client_id"), "client_id"),
            data.get("number_of_bags"),
            client_email=data.get("client_email"),
            notes=data.get("notes"),
            actor=g.actor,
        )
        return jsonify({"issue": issue.to_dict()}), 201
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to request bag issuance")
        return jsonify({"error": "Internal server error"}), 500


@issues_bp.post("/<int:issue_id>/verify")
@require_tenant
def verify_issuance_route(issue_id: int):
    """
    Verify an issuance with the client's one-time code.

    Request body:
    {
        "otp_code": "123456"
    }

    Returns:
        200: Issue verified, driver bags consumed
        400: Wrong code
        404: Issue not found
        409: Already verified, or driver no longer holds enough bags
        410: Code expired
    """
    try:
        data = require_payload(request.get_json(silent=True))
        issue = issuance_service.verify_issuance(
            g.org_id,
            issue_id,
            data.get("otp_code"),
            actor=g.actor,
        )
        return jsonify({
            "issue": issue.to_dict(),
            "driver_available_bags": allocation_service.get_available_bags(issue.driver_id),
        }), 200
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to verify bag issuance")
        return jsonify({"error": "Internal server error"}), 500


@issues_bp.post("/<int:issue_id>/resend")
@require_tenant
def resend_issue_code_route(issue_id: int):
    """
    Send a fresh one-time code for an unverified issue.

    Returns:
        200: New code sent, expiry restarted
        404: Issue not found
        409: Already verified
    """
    try:
        issue = issuance_service.resend_issue_otp(g.org_id, issue_id)
        return jsonify({"issue": issue.to_dict()}), 200
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to resend bag issue code")
        return jsonify({"error": "Internal server error"}), 500


@issues_bp.get("/list")
@require_tenant
def list_issuances_route():
    """
    Bag distribution history.

    Query parameters:
        page, limit: Pagination (default limit 20)
        search: Driver/client name, recipient email or code
        status: verified | pending | expired
        clientId, driverId: Restrict to one client or driver
        startDate, endDate: Created-at window (inclusive, ISO-8601)
    """
    try:
        result = reporting_service.list_issuances(
            g.org_id,
            page=request.args.get("page", type=int),
            limit=request.args.get("limit", type=int),
            search=request.args.get("search"),
            status=request.args.get("status"),
            client_id=request.args.get("clientId", type=int),
            driver_id=request.args.get("driverId", type=int),
            start_date=_date_arg("startDate"),
            end_date=_date_arg("endDate", end=True),
        )
        return jsonify(result), 200
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list bag issuances")
        return jsonify({"error": "Internal server error"}), 500
