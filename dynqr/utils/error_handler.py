from flask import current_app
from werkzeug.exceptions import HTTPException

from ..errors import ServiceError
from .response import api_response


def register_error_handlers(app):
    @app.errorhandler(ServiceError)
    def service_error(e):
        if e.status >= 500:
            current_app.logger.error(f"{e.code}: {e.message}")
        return api_response(False, e.message, e.data, code=e.code, status=e.status)

    @app.errorhandler(400)
    def bad_request(e):
        return api_response(False, "Bad Request", None, code="ValidationError", status=400)

    @app.errorhandler(401)
    def unauthorized(e):
        return api_response(False, "Unauthorized", None, code="Unauthorized", status=401)

    @app.errorhandler(404)
    def not_found(e):
        return api_response(False, "Not Found", None, code="NotFound", status=404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_response(False, "Method Not Allowed", None, code="ValidationError", status=405)

    @app.errorhandler(500)
    def server_error(e):
        return api_response(False, "Server Error", None, code="InternalError", status=500)

    @app.errorhandler(HTTPException)
    def http_error(e):
        return api_response(False, e.description or e.name, None, status=e.code or 500)
