"""
Production entry point; settings come from the environment and .env.

    uvicorn asgi:app --host 0.0.0.0 --port 3001 --proxy-headers
"""

from app import create_app

app = create_app()
