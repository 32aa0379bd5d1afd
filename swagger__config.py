"""
Swagger/OpenAPI configuration for the Canteen Backend API
"""

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec",
            "route": "/apispec.json",
            "rule_filter": lambda rule: True,
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/api/docs",
}

SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "Canteen Backend API",
        "description": "REST API for school canteen ordering: accounts, stalls, menus, discounts, orders and PDF receipts",
        "version": "1.0.0",
    },
    "host": "",
    "basePath": "/",
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": 'JWT Authorization header using the Bearer scheme. Example: "Authorization: Bearer {token}"',
        }
    },
    "tags": [
        {"name": "Authentication", "description": "Registration and login"},
        {"name": "Stalls", "description": "Stall management (admin)"},
        {"name": "Menu", "description": "Menu browsing and management"},
        {"name": "Discounts", "description": "Discount windows and assignments"},
        {"name": "Orders", "description": "Checkout, order changes, status and history"},
        {"name": "Utility", "description": "Service status"},
    ],
    "definitions": {
        "Error": {
            "type": "object",
            "properties": {
                "status": {"type": "string", "example": "error"},
                "message": {"type": "string"},
                "details": {"type": "object"},
            },
        },
        "Success": {
            "type": "object",
            "properties": {
                "status": {"type": "string", "example": "success"},
                "message": {"type": "string"},
            },
        },
        "MenuItem": {
            "type": "object",
            "properties": {
                "id": {"type": "integer"},
                "name": {"type": "string"},
                "price": {"type": "number"},
                "category": {"type": "string", "enum": ["food", "drink"]},
                "description": {"type": "string"},
                "photo_url": {"type": "string"},
                "stall_id": {"type": "integer"},
                "stall_name": {"type": "string"},
                "current_price": {"type": "number"},
            },
        },
        "OrderLine": {
            "type": "object",
            "properties": {
                "menu_id": {"type": "integer"},
                "quantity": {"type": "integer"},
                "unit_price": {"type": "number"},
                "subtotal": {"type": "number"},
            },
        },
        "Order": {
            "type": "object",
            "properties": {
                "order_id": {"type": "integer"},
                "stall_id": {"type": "integer"},
                "status": {
                    "type": "string",
                    "enum": ["unconfirmed", "cooking", "delivering", "arrived"],
                },
                "created_at": {"type": "string", "format": "date-time"},
                "total": {"type": "number"},
                "items": {"type": "array", "items": {"$ref": "#/definitions/OrderLine"}},
            },
        },
    },
}
