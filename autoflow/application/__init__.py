"""Application layer: ports (interfaces), DTOs and services.

No runtime imports from autoflow.infrastructure.
"""
