"""
envd lifecycle - development environment container orchestration

Builds container creation specs for envd development environments, starts
them on a Docker host, waits for readiness, and tears them down, pauses or
resumes them idempotently.
"""

__version__ = "0.1.0"
