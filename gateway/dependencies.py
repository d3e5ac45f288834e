"""
gateway/dependencies.py

FastAPI dependency returning the Services instance built in the lifespan.
"""

from fastapi import Request

from gateway.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services
