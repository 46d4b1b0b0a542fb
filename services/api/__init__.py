"""
HTTP layer for the Veo relay.

Thin FastAPI handlers over ``services.operations.VideoRelay``.
"""
