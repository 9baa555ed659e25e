"""XHE source package.

This package contains:
- config: Configuration loading and management
- kernel: Identity, content addressing, pulse log, resolver, slips and social state
"""

from __future__ import annotations

__all__: list[str] = []
