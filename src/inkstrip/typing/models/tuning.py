"""Detection tuning model."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

HueBound = Annotated[float, Field(ge=0.0, le=360.0)]
HueRange = tuple[HueBound, HueBound]


class TuningProfile(BaseModel):
    """HSV thresholds and radii controlling annotation detection.

    Hue ranges wrap through 0/360 when the lower bound exceeds the upper one.
    Out-of-range values are rejected at construction; callers holding untrusted
    values go through `inkstrip.tuning` which clamps them first.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    s_min: float = Field(ge=0.0, le=1.0, alias="sMin")
    v_min: float = Field(ge=0.0, le=1.0, alias="vMin")
    hue_a: HueRange = Field(alias="hueA")
    hue_b: HueRange = Field(alias="hueB")
    dilate_radius: int = Field(ge=0, le=3, alias="dilateRadius")
    inpaint_radius: int = Field(ge=1, le=5, alias="inpaintRadius")


DEFAULT_TUNING = TuningProfile(
    s_min=0.35,
    v_min=0.25,
    hue_a=(0.0, 25.0),
    hue_b=(330.0, 360.0),
    dilate_radius=1,
    inpaint_radius=2,
)
