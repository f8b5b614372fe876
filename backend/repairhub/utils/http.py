from fastapi import Request

from repairhub.config import settings


def request_origin(request: Request) -> str:
    """Base URL for checkout redirects: the caller's Origin, else the app URL."""
    origin = request.headers.get("origin")
    return (origin or settings.public_app_url).rstrip("/")
