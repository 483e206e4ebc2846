# pesign_repackage/__init__.py
"""Regenerate a specfile that rebuilds binary RPMs from a modified payload tree."""

__version__ = "1.0.0"
