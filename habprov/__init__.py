"""
Habitat host provisioner.

Connects to a remote host, installs the Habitat runtime and supervisor, then
loads each declared service with its options and ``user.toml``.  Remote output
is relayed line by line to a caller supplied sink while commands run.
"""

from __future__ import annotations

__version__ = "0.3.0"

__all__ = ["__version__"]
