# Defaults for integration, fitting and confidence-region construction
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SPECIES = ("A", "B", "C")

DEFAULT_GRID_STEP = 0.1     # spacing of the dense reference grid
DEFAULT_METHOD = "euler"    # one explicit step per grid gap
CONFIDENCE_LEVEL = 0.95
ELLIPSE_POINTS = 100

INTEGRATION_METHODS = ("euler", "rk4")


class FitSettings(BaseModel):
    """Knobs for a single fit run."""
    model_config = ConfigDict(frozen=True)

    grid_step: float = Field(default=DEFAULT_GRID_STEP, gt=0)
    method: str = DEFAULT_METHOD
    max_nfev: Optional[int] = Field(default=None, gt=0)
    confidence_level: float = Field(default=CONFIDENCE_LEVEL, gt=0, lt=1)
    ellipse_points: int = Field(default=ELLIPSE_POINTS, ge=3)

    @field_validator('method')
    @classmethod
    def must_be_known_method(cls, v):
        v = v.lower()
        if v not in INTEGRATION_METHODS:
            raise ValueError(f"Unknown integration method '{v}'. Choose from {INTEGRATION_METHODS}.")
        return v
