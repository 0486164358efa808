"""autoflow: multi-tenant workflow automation engine.

Graph model and validation, cycle detection, versioning, per-workflow
permissions, trigger dispatch and the execution state machine.
"""

__version__ = "1.0.0"
