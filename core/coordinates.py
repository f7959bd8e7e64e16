"""Map input step positions into absolute client-space pixels."""
from __future__ import annotations

from dataclasses import dataclass

from core.protocol import InputStep, Viewport


@dataclass(frozen=True)
class ClientPosition:
    client_x: float
    client_y: float


def to_client_position(step: InputStep, viewport: Viewport) -> ClientPosition:
    if step.space == "pixels":
        return ClientPosition(client_x=step.x, client_y=step.y)
    return ClientPosition(
        client_x=step.x * viewport.width,
        client_y=step.y * viewport.height,
    )
