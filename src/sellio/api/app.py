"""ASGI entry point: uvicorn sellio.api.app:app"""

from .factory import create_app

app = create_app()
