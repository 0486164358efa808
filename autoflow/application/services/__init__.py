"""Application services: validation, handlers, versioning, permissions, statistics."""
