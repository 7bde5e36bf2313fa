"""Route optimizer request/response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from .base import CamelModel
from .convoys import ConvoyModel, LocationModel, RouteModel


class OptimizerRequest(CamelModel):
    convoy_id: str
    destination_override: Optional[LocationModel] = None
    apply: bool = Field(default=False, description="Commit the computed route to the convoy.")


class OptimizerResponse(CamelModel):
    route: RouteModel
    notes: List[str]
    convoy: Optional[ConvoyModel] = Field(default=None, description="Updated convoy when apply was requested.")
