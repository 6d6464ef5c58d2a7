from __future__ import annotations

from .main import create_app

# uvicorn backend.imagegen.asgi:app
app = create_app()
