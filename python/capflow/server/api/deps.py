from fastapi import Request

from capflow.core.engine import PollingEngine


def get_engine(request: Request) -> PollingEngine:
    """Return the polling engine attached to the running app."""
    return request.app.state.engine
