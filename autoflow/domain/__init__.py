"""Domain layer: entities, value objects, enums and exceptions.

Independent of persistence and transport.
"""
