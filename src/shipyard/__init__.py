"""Shipyard: single-host deployment orchestrator.

Keeps applications, engines and engine modules in sync with their git
repositories: pull, build, restart under a process supervisor, and record
every attempt.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
