"""API routes module - registers all route blueprints.

Route Organization:
- cards.py: Generic card endpoints for every card type (9 routes)
- kv.py: Direct KV access and single-key watch stream (4 routes)
- events.py: Server-sent event stream (1 route)
- users.py: Current user and preferences (2 routes)
- system.py: Health checks (2 routes)
"""

from apiflask import APIFlask

from cybercards.api.routes import cards, events, kv, system, users


def register_blueprints(app: APIFlask) -> None:
    """Register all route blueprints with the Flask app.

    Args:
        app: APIFlask application instance
    """
    app.register_blueprint(system.api)
    app.register_blueprint(users.api)
    app.register_blueprint(cards.api)
    app.register_blueprint(kv.api)
    app.register_blueprint(events.api)


__all__ = [
    "register_blueprints",
]
