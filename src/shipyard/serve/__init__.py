"""Webhook server package.

Receives push events and manual redeploy requests over HTTP and serializes
the resulting deployments per target.
"""

__all__: list[str] = []
