# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
glwatch CLI

Usage:
    glwatch config ...       # Show/set configuration
    glwatch watch ...        # Stream watch events (alias: w)
    glwatch todos ...        # Todo commands (alias: t)
    glwatch merge ...        # Merge a merge request
"""

from .main import cli, main

__all__ = ['cli', 'main']
