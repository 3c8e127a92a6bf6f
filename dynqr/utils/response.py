from flask import jsonify


def api_response(success: bool, message: str, data: dict | None = None, code: str | None = None, status: int = 200):
    # Unified envelope; code mirrors the failure taxonomy in dynqr.errors
    return jsonify({
        "success": success,
        "code": code or ("Ok" if success else "Error"),
        "message": message,
        "data": data
    }), status
