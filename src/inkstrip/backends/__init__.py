"""Tuning-suggestion backends."""

from inkstrip.backends.tuning_openai import OpenAITuningSource, build_tuning_source
from inkstrip.typing.protocol import TuningSource

__all__ = [
    "OpenAITuningSource",
    "TuningSource",
    "build_tuning_source",
]
