import io

from flask import Blueprint, g, jsonify, request, send_file

from ..errors import CanteenError, ForbiddenError
from ..extensions import db
from ..services import orders as order_service
from ..services.receipt import build_receipt_pdf
from ..utils.auth import require_roles
from ..utils.http import domain_error, error_response, internal_error, request_data

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.route("/checkout", methods=["POST"])
@require_roles("student")
def checkout():
    """
    Place an order at one stall
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [stall_id, items]
          properties:
            stall_id:
              type: integer
            items:
              type: array
              items:
                type: object
                properties:
                  menu_id:
                    type: integer
                  quantity:
                    type: integer
                    minimum: 1
    responses:
      201:
        description: Order created with status unconfirmed
      400:
        description: Invalid items, or an item not sold by this stall
      404:
        description: Stall not found
    """
    try:
        data = request_data()
        if data.get("stall_id") in (None, ""):
            return error_response("stall_id is required", 400)
        try:
            stall_id = int(data["stall_id"])
        except (TypeError, ValueError):
            return error_response("stall_id must be an integer", 400)

        result = order_service.create_order(
            db.session, g.principal.student_id, stall_id, data.get("items")
        )
        return (
            jsonify({"status": "success", "message": "Order created", "data": result}),
            201,
        )
    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, "Checkout failed")


@orders_bp.route("/<int:order_id>/items", methods=["PUT"])
@require_roles("student")
def replace_items(order_id):
    """
    Replace every item of an order that is still unconfirmed
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    parameters:
      - in: path
        name: order_id
        type: integer
        required: true
      - in: body
        name: body
        schema:
          type: object
          required: [items]
          properties:
            items:
              type: array
              items:
                type: object
                properties:
                  menu_id:
                    type: integer
                  quantity:
                    type: integer
                    minimum: 1
    responses:
      200:
        description: Items replaced and prices taken again
      400:
        description: Invalid items, or the order is no longer unconfirmed
      403:
        description: Order belongs to another student
      404:
        description: Order not found
    """
    try:
        data = request_data()
        result = order_service.replace_order_items(
            db.session, order_id, g.principal.student_id, data.get("items")
        )
        return (
            jsonify({"status": "success", "message": "Order updated", "data": result}),
            200,
        )
    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, f"Failed to update order {order_id}")


@orders_bp.route("/<int:order_id>", methods=["DELETE"])
@require_roles("student")
def cancel(order_id):
    """
    Cancel an unconfirmed order
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    parameters:
      - in: path
        name: order_id
        type: integer
        required: true
    responses:
      200:
        description: Order and its items deleted
      400:
        description: Order is no longer unconfirmed
      403:
        description: Order belongs to another student
      404:
        description: Order not found
    """
    try:
        order_service.cancel_order(db.session, order_id, g.principal.student_id)
        return jsonify({"status": "success", "message": "Order cancelled"}), 200
    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, f"Failed to cancel order {order_id}")


@orders_bp.route("/<int:order_id>/status", methods=["PUT"])
@require_roles("staff", "admin")
def update_status(order_id):
    """
    Advance an order to its next status
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    parameters:
      - in: path
        name: order_id
        type: integer
        required: true
      - in: body
        name: body
        schema:
          type: object
          required: [status]
          properties:
            status:
              type: string
              enum: [cooking, delivering, arrived]
    responses:
      200:
        description: Status changed
      400:
        description: Unknown status or not the next step
      403:
        description: Order belongs to another stall
      404:
        description: Order not found
    """
    try:
        data = request_data()
        if not data.get("status"):
            return error_response("status is required", 400)

        result = order_service.advance_status(
            db.session, order_id, data["status"], g.principal
        )
        return (
            jsonify({"status": "success", "message": "Order status updated", "data": result}),
            200,
        )
    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, f"Failed to update status of order {order_id}")


@orders_bp.route("/history", methods=["GET"])
@require_roles("student")
def history():
    """
    Orders of the logged in student for one month
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    parameters:
      - in: query
        name: month
        type: integer
        required: false
        description: 1-12, defaults to the current month
      - in: query
        name: year
        type: integer
        required: false
        description: Defaults to the current year
    responses:
      200:
        description: Orders of the month, newest first
      400:
        description: month or year is not a valid number
    """
    try:
        orders = order_service.student_history(
            db.session,
            g.principal.student_id,
            month=request.args.get("month"),
            year=request.args.get("year"),
        )
        return jsonify({"status": "success", "orders_found": len(orders), "data": orders}), 200
    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, "Failed to load order history")


@orders_bp.route("/stall-history", methods=["GET"])
@require_roles("staff", "admin")
def stall_history():
    """
    Orders and income of a stall for one month
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    parameters:
      - in: query
        name: stall_id
        type: integer
        required: false
        description: Required for admins, staff always see their own stall
      - in: query
        name: month
        type: integer
        required: false
      - in: query
        name: year
        type: integer
        required: false
    responses:
      200:
        description: Orders of the month with order count and revenue totals
      400:
        description: Missing stall_id for admin, or an invalid month or year
    """
    try:
        principal = g.principal
        if principal.is_admin:
            stall_id = request.args.get("stall_id", type=int)
            if stall_id is None:
                return error_response("stall_id query parameter is required for admin", 400)
        else:
            stall_id = principal.stall_id

        orders, summary = order_service.stall_history(
            db.session,
            stall_id,
            month=request.args.get("month"),
            year=request.args.get("year"),
        )
        return (
            jsonify(
                {
                    "status": "success",
                    "stall_id": stall_id,
                    "summary": summary,
                    "data": orders,
                }
            ),
            200,
        )
    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, "Failed to load stall history")


@orders_bp.route("/<int:order_id>", methods=["GET"])
@require_roles("student", "staff", "admin")
def get_order(order_id):
    """
    Order detail
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    parameters:
      - in: path
        name: order_id
        type: integer
        required: true
    responses:
      200:
        description: Order with its lines and total
      403:
        description: Not the owner or staff of the stall
      404:
        description: Order not found
    """
    try:
        order = order_service.get_order(db.session, order_id)
        order_service.check_can_view(order, g.principal)
        return jsonify({"status": "success", "data": order_service.serialize_order(order)}), 200
    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, f"Failed to fetch order {order_id}")


@orders_bp.route("/<int:order_id>/receipt", methods=["GET"])
@require_roles("student")
def receipt(order_id):
    """
    Download the receipt of an order as PDF
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    produces:
      - application/pdf
    responses:
      200:
        description: PDF attachment
      403:
        description: Order belongs to another student
      404:
        description: Order not found
    """
    try:
        order = order_service.get_order(db.session, order_id)
        if order.student_id != g.principal.student_id:
            raise ForbiddenError("This order does not belong to you")

        pdf_bytes = build_receipt_pdf(order)
        filename = f"receipt-{order.id}-{order.student.student_number}.pdf"

        return send_file(
            io.BytesIO(pdf_bytes),
            mimetype="application/pdf",
            as_attachment=True,
            download_name=filename,
        )
    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, f"Failed to build receipt for order {order_id}")
