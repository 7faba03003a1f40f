"""ASGI entry point: ``uvicorn skycache.main:app``."""

from skycache.core.app_factory import create_app

app = create_app()
