"""
schemasync - Event collection with schema inference

Receives freeform telemetry events, infers a typed schema for a
columnar analytical store, publishes schema changes ahead of data,
and buffers events for periodic delivery.
"""

__version__ = "0.1.0"
