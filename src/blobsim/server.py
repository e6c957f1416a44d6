from __future__ import annotations

from .app.server import SimulationController, app, controller

__all__ = ["SimulationController", "app", "controller"]
