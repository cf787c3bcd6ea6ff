# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
glwatch - poll-driven GitLab merge request, pipeline and todo watcher
"""

__version__ = "0.3.0"
