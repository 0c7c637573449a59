#rastreamento/Controller/deps.py

from fastapi import Request
from rastreamento.Services.broadcast_coordinator import BroadcastCoordinator

def get_coordinator(request: Request) -> BroadcastCoordinator:
    return request.app.state.coordinator
