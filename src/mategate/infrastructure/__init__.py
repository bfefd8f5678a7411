"""Infrastructure layer: database, project files, keyed locks, sandbox providers.

This layer depends on stdlib and third-party libs (SQLAlchemy, httpx).
It must never import from services, gateway, commands, or output.
The service layer bridges between domain models and infrastructure.
"""
