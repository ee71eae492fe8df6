import sys
import uuid
from typing import Any

from apiflask import APIFlask, HTTPError
from flask import Response, g, request, send_from_directory

from cybercards.api.errors import (
    ErrorCode,
    code_for_status,
    create_error_response,
    raise_method_not_allowed_error,
    raise_not_found_error,
    server_error,
    validation_error,
)
from cybercards.api.routes import register_blueprints
from cybercards.config import Config
from cybercards.db.kv_store import KvStore
from cybercards.extensions import get_services, init_services
from cybercards.services.broadcast import BroadcastRelay
from cybercards.utils.logging import get_logger, set_request_id, setup_logging

# Path prefixes whose URLs embed user-supplied identifiers
_GUARDED_PREFIXES = ("/cards/", "/kv/")


def create_app(
    kv_store: KvStore | None = None,
    relay: BroadcastRelay | None = None,
) -> APIFlask:
    """Create and configure the Flask application.

    kv_store and relay are created from Config when not given; tests pass
    their own.
    """
    # Setup structured logging first
    setup_logging()
    logger = get_logger(__name__)

    app = APIFlask(
        __name__,
        title="Cybercards",
        version="1.0",
        static_folder="../static",
        static_url_path="/static",
    )
    services = init_services(app, kv_store=kv_store, relay=relay)
    logger.info(
        "Flask app created",
        extra={
            "environment": Config.FLASK_ENV,
            "log_level": Config.LOG_LEVEL,
            "db_path": str(services.kv.db_path),
            "card_types": sorted(services.card_routers),
        },
    )

    # Request ID middleware - must be before blueprints
    @app.before_request
    def add_request_id() -> None:
        """Generate and store request ID for correlation."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        set_request_id(request_id)
        g.request_id = request_id

    # Log all requests
    @app.before_request
    def log_request() -> None:
        """Log incoming requests."""
        logger.info(
            "Incoming request",
            extra={
                "method": request.method,
                "path": request.path,
                "remote_addr": request.remote_addr,
                "user_agent": request.headers.get("User-Agent", ""),
            },
        )

    @app.before_request
    def handle_preflight() -> Response | None:
        """Answer CORS preflight requests; headers are added in add_cors_headers."""
        if request.method == "OPTIONS":
            return Response(status=204)
        return None

    @app.before_request
    def reject_path_traversal() -> tuple[dict[str, Any], int] | None:
        path = request.path
        if path.startswith(_GUARDED_PREFIXES) and (".." in path or "\\" in path):
            logger.warning("Rejected path traversal attempt", extra={"path": path})
            return validation_error("Invalid path")
        return None

    @app.after_request
    def add_session_cookie(response: Response) -> Response:
        """Send the cookie of a newly created or renewed session."""
        set_cookie = g.get("set_cookie")
        if set_cookie:
            response.headers.add("Set-Cookie", set_cookie)
        return response

    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = Config.CORS_ALLOW_ORIGIN
        response.headers["Access-Control-Allow-Methods"] = Config.CORS_ALLOW_METHODS
        response.headers["Access-Control-Allow-Headers"] = Config.CORS_ALLOW_HEADERS
        response.headers["Access-Control-Allow-Credentials"] = "true"
        return response

    # Log responses
    @app.after_request
    def log_response(response: Response) -> Response:
        """Log outgoing responses."""
        logger.info(
            "Outgoing response",
            extra={
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "content_length": response.content_length,
            },
        )
        return response

    @app.error_processor
    def json_error(error: HTTPError) -> tuple[dict[str, Any], int, Any]:
        """Render every HTTP error (ours and Flask's own 404/405) in the API error shape."""
        extra = error.extra_data or {}
        code = ErrorCode(extra["code"]) if "code" in extra else code_for_status(error.status_code)
        message = error.message or "Error"
        # Flask's built-in 404 says "Not Found"; clients expect the short form
        if error.status_code == 404 and message == "Not Found":
            message = "not found"
        body = create_error_response(code, message, extra.get("details"))
        return body, error.status_code, error.headers

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception) -> Any:
        """Log unexpected exceptions and hide their details from the client."""
        logger.error(
            "Unhandled exception",
            extra={"method": request.method, "path": request.path, "error_type": type(e).__name__},
            exc_info=True,
        )
        return server_error()

    register_blueprints(app)

    @app.route("/")
    def index() -> Response:
        logger.debug("Serving index page")
        return send_from_directory(app.static_folder or "static", "index.html")

    # Serve static files
    @app.route("/<path:path>")
    def static_files(path: str) -> Response:
        if request.path.startswith(_GUARDED_PREFIXES):
            # API paths are never static files; a path owned by a POST-only
            # route answers 405 instead of a static 404
            adapter = app.url_map.bind_to_environ(request.environ)
            allowed = set(adapter.allowed_methods()) - {"GET", "HEAD", "OPTIONS"}
            if allowed:
                raise_method_not_allowed_error(sorted(allowed | {"OPTIONS"}))
            raise_not_found_error()
        return send_from_directory(app.static_folder or "static", path)

    return app


def main() -> None:
    """Main entry point."""
    # Setup logging early
    setup_logging()
    logger = get_logger(__name__)

    # Validate configuration
    errors = Config.validate()
    if errors:
        logger.error("Configuration validation failed", extra={"errors": errors})
        print("Configuration errors:")
        for error in errors:
            print(f"  - {error}")
        sys.exit(1)

    app = create_app()
    logger.info(
        "Starting Cybercards",
        extra={
            "port": Config.PORT,
            "environment": Config.FLASK_ENV,
            "log_level": Config.LOG_LEVEL,
        },
    )
    try:
        app.run(
            host="0.0.0.0",
            port=Config.PORT,
            debug=Config.is_development(),
            threaded=True,
            use_reloader=False,
        )
    finally:
        with app.app_context():
            get_services().shutdown()
        logger.info("Cybercards stopped")


if __name__ == "__main__":
    main()
