"""Resolution of detection tuning from defaults or external suggestions."""

from __future__ import annotations

import base64
import json
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from inkstrip import logger
from inkstrip.exceptions import PackageError
from inkstrip.typing.models import DEFAULT_TUNING, TuningProfile

if TYPE_CHECKING:
    from inkstrip.typing.protocol import TuningSource


@dataclass(frozen=True)
class TuningResolutionFailure(PackageError):
    """Suggestion text could not be turned into tuning values; always recovered locally."""

    message: str

    def __str__(self) -> str:
        """Return error message payload."""
        return self.message


def extract_json_object(text: str) -> str | None:
    """Return the span from the first `{` to the last `}`, if any.

    Args:
        text (str): Free-form response text.

    Returns:
        str | None: Candidate JSON object text.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def _as_number(value: Any) -> float | None:  # noqa: ANN401
    """Return a finite float for JSON numbers, None for anything else."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def clamp_unit(value: float) -> float:
    """Clamp a value into `[0, 1]`."""
    return max(0.0, min(1.0, value))


def clamp_radius(value: float, low: int, high: int) -> int:
    """Round half up to an integer and clamp into `[low, high]`."""
    return max(low, min(high, math.floor(value + 0.5)))


def normalize_hue(value: float) -> float:
    """Reduce a hue in degrees into `[0, 360)`."""
    return value % 360.0


def _hue_range(value: Any, fallback: tuple[float, float]) -> tuple[float, float]:  # noqa: ANN401
    """Normalize a `[lower, upper]` pair, or return the fallback when malformed."""
    if not isinstance(value, (list, tuple)) or len(value) != 2:  # noqa: PLR2004
        return fallback
    lower, upper = (_as_number(item) for item in value)
    if lower is None or upper is None:
        return fallback
    return normalize_hue(lower), normalize_hue(upper)


def _parse_suggestion(text: str) -> dict[str, Any]:
    """Extract the JSON object embedded in a response.

    Raises:
        TuningResolutionFailure: If no object can be found or decoded.
    """
    candidate = extract_json_object(text)
    if candidate is None:
        raise TuningResolutionFailure(message="No JSON object in tuning response")
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise TuningResolutionFailure(message=f"Invalid JSON in tuning response: {exc.msg}") from exc
    except (ValueError, RecursionError) as exc:
        raise TuningResolutionFailure(message=f"Unreadable JSON in tuning response: {exc}") from exc
    if not isinstance(payload, dict):
        raise TuningResolutionFailure(message="Tuning response is not a JSON object")
    return payload


def profile_from_response(text: str, default: TuningProfile = DEFAULT_TUNING) -> TuningProfile:
    """Build a validated profile from suggestion text.

    Each field is clamped into range independently; missing or malformed fields
    keep the default value. Unusable text yields `default` unchanged.

    Args:
        text (str): Raw suggestion text.
        default (TuningProfile): Profile supplying fallback values.

    Returns:
        TuningProfile: Validated profile.
    """
    try:
        payload = _parse_suggestion(text)
    except TuningResolutionFailure as exc:
        logger.info("Using default tuning", extra={"reason": str(exc)})
        return default

    s_min = _as_number(payload.get("sMin"))
    v_min = _as_number(payload.get("vMin"))
    dilate_radius = _as_number(payload.get("dilateRadius"))
    inpaint_radius = _as_number(payload.get("inpaintRadius"))

    return TuningProfile(
        s_min=default.s_min if s_min is None else clamp_unit(s_min),
        v_min=default.v_min if v_min is None else clamp_unit(v_min),
        hue_a=_hue_range(payload.get("hueA"), default.hue_a),
        hue_b=_hue_range(payload.get("hueB"), default.hue_b),
        dilate_radius=default.dilate_radius if dilate_radius is None else clamp_radius(dilate_radius, 0, 3),
        inpaint_radius=(
            default.inpaint_radius if inpaint_radius is None else clamp_radius(inpaint_radius, 1, 5)
        ),
    )


class TuningResolver:
    """Produces a `TuningProfile`, asking an optional suggestion source first.

    The resolver keeps no state between calls and never raises: any failure of
    the source is treated as an empty suggestion.
    """

    def __init__(
        self,
        source: TuningSource | None = None,
        *,
        default: TuningProfile = DEFAULT_TUNING,
    ) -> None:
        """Initialize resolver.

        Args:
            source (TuningSource | None): Suggestion service, if configured.
            default (TuningProfile): Fallback profile.
        """
        self._source = source
        self._default = default

    @property
    def has_source(self) -> bool:
        """Return whether a suggestion source is configured."""
        return self._source is not None

    @property
    def default(self) -> TuningProfile:
        """Return the fallback profile."""
        return self._default

    async def resolve(self, sample_png: bytes | None = None) -> TuningProfile:
        """Return tuning for one page.

        Args:
            sample_png (bytes | None): PNG-encoded sample page.

        Returns:
            TuningProfile: Suggested profile, or the default.
        """
        if self._source is None or not sample_png:
            return self._default

        encoded = base64.b64encode(sample_png).decode("ascii")
        try:
            text = await self._source.suggest(encoded)
            if not isinstance(text, str):
                return self._default
            return profile_from_response(text, self._default)
        except Exception as exc:
            logger.warning("Tuning suggestion failed; using default", extra={"error": str(exc)})
            return self._default
