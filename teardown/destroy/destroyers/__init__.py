"""Service destroyers, one module per AWS service.

Every ServiceDestroyer subclass defined in this package is discovered by
``teardown.destroy.registry``.
"""
