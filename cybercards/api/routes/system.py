"""System routes: health checks.

These endpoints do not resolve a user, so probes never create anonymous
users or sessions.
"""

from typing import Any

from apiflask import APIBlueprint

from cybercards.extensions import get_services
from cybercards.utils.logging import get_logger

logger = get_logger(__name__)

api = APIBlueprint("system", __name__, url_prefix="/api", tag="System")


@api.route("/health", methods=["GET"])
def health_check() -> tuple[dict[str, Any], int]:
    """Liveness probe - checks if the application process is running.

    This endpoint should NOT check the KV store. Use /api/ready for that.
    """
    return {"status": "ok"}, 200


@api.route("/ready", methods=["GET"])
@api.doc(responses=[503])
def readiness_check() -> tuple[dict[str, Any], int]:
    """Readiness probe - checks that the KV store answers queries and the relay is open.

    Returns:
        200: Application is ready to serve traffic
        503: Application is not ready (dependency failure)
    """
    services = get_services()
    checks: dict[str, dict[str, Any]] = {}

    kv_ok, kv_error = services.kv.check_connectivity()
    checks["kv"] = {
        "status": "ok" if kv_ok else "error",
        "message": "Connected" if kv_ok else kv_error,
    }
    if not kv_ok:
        logger.error("Readiness check failed: kv", extra={"error": kv_error})

    relay_ok = services.relay.is_open
    checks["relay"] = {
        "status": "ok" if relay_ok else "error",
        "message": "Open" if relay_ok else "Closed",
        "listeners": services.relay.listener_count(),
    }

    is_ready = kv_ok and relay_ok
    response = {
        "status": "ready" if is_ready else "not_ready",
        "checks": checks,
        "connections": len(services.connections),
    }

    if is_ready:
        logger.debug("Readiness check passed")
    else:
        logger.warning("Readiness check failed", extra={"checks": checks})

    return response, 200 if is_ready else 503
