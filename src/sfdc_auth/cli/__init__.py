"""Command-line interface for sfdc-auth.

Provides commands for inspecting a provider and exercising its OAuth flows.
"""

from .main import cli, main

__all__ = ["cli", "main"]
