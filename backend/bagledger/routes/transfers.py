# backend/bagledger/routes/transfers.py
"""
Driver-to-driver bag transfer API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_tenant
from ..errors import BagLedgerError
from ..services import allocation_service, reporting_service, transfer_service
from ..validation import require_payload


transfers_bp = Blueprint("bag_transfers", __name__, url_prefix="/api/organization/bags/transfers")


@transfers_bp.route("", methods=["POST"])
@require_tenant
def initiate_transfer():
    """
    Move bags from one driver to another (pending until completed).

    Request body:
    {
        "from_driver_id": int,
        "to_driver_id": int,
        "number_of_bags": int,
        "notes": str (optional)
    }

    Returns:
        201: Transfer created, source driver charged
        400: Invalid request
        404: Driver not found
        409: Source driver does not hold enough bags
    """
    try:
        data = require_payload(request.get_json(silent=True))
        transfer = transfer_service.initiate_transfer(
            g.org_id,
            data.get("from_driver_id"),
            data.get("to_driver_id"),
            data.get("number_of_bags"),
            notes=data.get("notes"),
            actor=g.actor,
        )
        return jsonify({
            "transfer": transfer.to_dict(),
            "from_driver_available_bags": allocation_service.get_available_bags(transfer.from_driver_id),
        }), 201
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to initiate bag transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/<int:transfer_id>/complete", methods=["POST"])
@require_tenant
def complete_transfer(transfer_id: int):
    """
    Complete a pending transfer, crediting the destination driver.

    Returns:
        200: Transfer completed
        404: Transfer not found
        409: Transfer not pending
    """
    try:
        transfer = transfer_service.complete_transfer(g.org_id, transfer_id, actor=g.actor)
        return jsonify({
            "transfer": transfer.to_dict(),
            "to_driver_available_bags": allocation_service.get_available_bags(transfer.to_driver_id),
        }), 200
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete bag transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/<int:transfer_id>/fail", methods=["POST"])
@require_tenant
def fail_transfer(transfer_id: int):
    """
    Fail a pending transfer, giving the bags back to the source driver.

    Request body:
    {
        "notes": str (optional)
    }

    Returns:
        200: Transfer failed
        404: Transfer not found
        409: Transfer not pending
    """
    try:
        data = request.get_json(silent=True) or {}
        transfer = transfer_service.fail_transfer(
            g.org_id,
            transfer_id,
            data.get("notes"),
            actor=g.actor,
        )
        return jsonify({
            "transfer": transfer.to_dict(),
            "from_driver_available_bags": allocation_service.get_available_bags(transfer.from_driver_id),
        }), 200
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to fail bag transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("", methods=["GET"])
@require_tenant
def list_transfers():
    """
    List transfers with optional filters.

    Query parameters:
        page, limit: Pagination
        status: pending | completed | failed
        driverId: Transfers where the driver is on either side
        search: Either driver's name
    """
    try:
        result = reporting_service.list_transfers(
            g.org_id,
            page=request.args.get("page", type=int),
            limit=request.args.get("limit", type=int),
            status=request.args.get("status"),
            driver_id=request.args.get("driverId", type=int),
            search=request.args.get("search"),
        )
        return jsonify(result), 200
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list bag transfers")
        return jsonify({"error": "Internal server error"}), 500
