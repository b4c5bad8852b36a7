# Overview: Flask API routes for organization bag stock, allocations and returns.

"""
Bag Stock & Allocation API Routes

DESIGN:
- Add/remove bags to organization stock (reason required on removal)
- Allocate bags from stock to drivers
- Process returns from drivers back to stock
- Overview, allocation list and movement history for the console

SECURITY:
- Every route is scoped to the tenant established by @require_tenant
- Driver ids from the request are validated against that tenant
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_tenant
from ..errors import BagLedgerError
from ..services import allocation_service, reporting_service, return_service, stock_service
from ..validation import coerce_int, require_payload


bags_bp = Blueprint("bags", __name__, url_prefix="/api/organization/bags")


@bags_bp.get("")
@require_tenant
def bag_overview_route():
    """
    Organization-wide bag overview.

    Returns:
        200: Stock, driver custody, in-transit and issuance totals
    """
    try:
        return jsonify(reporting_service.get_bag_overview(g.org_id)), 200
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load bag overview")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ORGANIZATION STOCK
# =============================================================================

@bags_bp.post("/add")
@require_tenant
def add_bags_route():
    """
    Add bags to organization stock.

    Request body:
    {
        "number_of_bags": 100
    }

    Returns:
        200: Updated stock
        400: Invalid count
    """
    try:
        data = require_payload(request.get_json(silent=True))
        stock = stock_service.add_bags(
            g.org_id,
            data.get("number_of_bags"),
            actor=g.actor,
        )
        return jsonify({"stock": stock.to_dict()}), 200
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add bags")
        return jsonify({"error": "Internal server error"}), 500


@bags_bp.post("/remove")
@require_tenant
def remove_bags_route():
    """
    Remove bags from organization stock.

    Request body:
    {
        "number_of_bags": 10,
        "reason": "Damaged in storage"
    }

    Returns:
        200: Updated stock
        400: Invalid count or missing reason
        409: Not enough bags in stock
    """
    try:
        data = require_payload(request.get_json(silent=True))
        stock = stock_service.remove_bags(
            g.org_id,
            data.get("number_of_bags"),
            data.get("reason"),
            actor=g.actor,
        )
        return jsonify({"stock": stock.to_dict()}), 200
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove bags")
        return jsonify({"error": "Internal server error"}), 500


@bags_bp.get("/history")
@require_tenant
def stock_history_route():
    """
    Movement history (stock and driver custody changes).

    Query parameters:
        page, limit: Pagination
        type: ADD, REMOVE, ALLOCATE, ISSUE, TRANSFER_OUT, TRANSFER_IN,
              TRANSFER_REVERSED, RETURN
        driverId: Only movements of this driver
    """
    try:
        result = reporting_service.list_movements(
            g.org_id,
            page=request.args.get("page", type=int),
            limit=request.args.get("limit", type=int),
            movement_type=request.args.get("type"),
            driver_id=request.args.get("driverId", type=int),
        )
        return jsonify(result), 200
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load bag history")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# DRIVER ALLOCATIONS
# =============================================================================

@bags_bp.post("/allocate")
@require_tenant
def allocate_bags_route():
    """
    Allocate bags from organization stock to a driver.

    Request body:
    {
        "driver_id": 7,
        "number_of_bags": 40
    }

    Returns:
        201: New recent allocation and updated stock
        404: Driver not found
        409: Not enough bags in stock
    """
    try:
        data = require_payload(request.get_json(silent=True))
        allocation = allocation_service.allocate_bags(
            g.org_id,
            coerce_int(data.get("driver_id"), "driver_id"),
            data.get("number_of_bags"),
            actor=g.actor,
        )
        return jsonify({
            "allocation": allocation.to_dict(),
            "stock": {
                "organization_id": g.org_id,
                "available_bags": stock_service.get_available_bags(g.org_id),
            },
        }), 201
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to allocate bags")
        return jsonify({"error": "Internal server error"}), 500


@bags_bp.get("/allocations")
@require_tenant
def list_allocations_route():
    """
    Driver allocation periods.

    Query parameters:
        page, limit: Pagination
        search: Driver name substring (case-insensitive)
        status: recent | previous
    """
    try:
        result = reporting_service.list_allocations(
            g.org_id,
            page=request.args.get("page", type=int),
            limit=request.args.get("limit", type=int),
            search=request.args.get("search"),
            status=request.args.get("status"),
        )
        return jsonify(result), 200
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list bag allocations")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RETURNS
# =============================================================================

@bags_bp.post("/process-return")
@require_tenant
def process_return_route():
    """
    Return bags from a driver to organization stock.

    Request body:
    {
        "driver_id": 7,
        "number_of_bags": 5,
        "reason": "damaged"
    }

    Returns:
        200: Updated stock and driver allocation
        400: Invalid count or missing reason
        409: Driver does not hold enough bags
    """
    try:
        data = require_payload(request.get_json(silent=True))
        result = return_service.process_return(
            g.org_id,
            coerce_int(data.get("driver_id"), "driver_id"),
            data.get("number_of_bags"),
            data.get("reason"),
            actor=g.actor,
        )
        return jsonify(result.to_dict()), 200
    except BagLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process bag return")
        return jsonify({"error": "Internal server error"}), 500
