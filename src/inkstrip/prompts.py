"""Instruction text sent to the tuning-suggestion service."""

from __future__ import annotations

TUNING_SCHEMA_HINT = (
    'Schema: {"sMin":0..1,"vMin":0..1,"hueA":[0..360,0..360],"hueB":[0..360,0..360],'
    '"dilateRadius":0..3,"inpaintRadius":1..5}. '
    "Use hue ranges around red (near 0 and near 360)."
)


def build_tuning_prompt(*, aggressive: bool = False, extra_instructions: str | None = None) -> str:
    """Build the instruction asking for HSV detection thresholds.

    Args:
        aggressive (bool): Ask for broader coverage of faint pink, magenta and
            orange-red remnants while preserving printed red layout elements.
        extra_instructions (str | None): Optional user instructions.

    Returns:
        str: Prompt text.
    """
    parts = [
        "You will receive a scanned document image that contains red teacher markings "
        "(ticks, circles, underlines).",
    ]
    if aggressive:
        parts.extend(
            [
                "Remove ONLY the handwriting/annotation strokes while preserving structural red elements "
                "such as printed borders, layout frames, or decorative headings.",
                "Expand detection to catch faint pink, magenta, and orange-red remnants by keeping "
                "saturation thresholds no higher than 0.25 and value thresholds no higher than 0.2.",
                "Treat any annotation color that differs from the student's original writing ink as "
                "teacher ink that must be removed.",
            ],
        )
    parts.append(
        "Return ONLY valid JSON (no markdown) with recommended HSV thresholds to detect red ink "
        "while keeping black text.",
    )
    parts.append(TUNING_SCHEMA_HINT)
    base = " ".join(parts)
    if extra_instructions:
        return f"{base}\nAdditional instructions: {extra_instructions}"
    return base
