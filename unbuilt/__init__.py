"""Unbuilt API.

Backend for AI-assisted market gap discovery: gap searches, multi-phase
action plans with task dependencies and progress tracking, AI conversations
about search results, collaborative plan rooms and a resource library.
"""

__version__ = "1.0.0"
