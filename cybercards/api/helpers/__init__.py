"""Helper functions shared across API routes.

This module exports the server-sent event streaming helpers used by the
event and KV watch endpoints.
"""

from cybercards.api.helpers.event_stream import event_stream_response, format_sse

__all__ = [
    "event_stream_response",
    "format_sse",
]
