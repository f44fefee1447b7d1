"""
Stages Module
=============

The five pipeline stages and the framework they share.
"""

from .base import BaseStage, StageContext, StageResult, SOURCE_VIDEO
from .audio_extract import AudioExtractStage
from .transcription import TranscriptionStage
from .translation import TranslationStage
from .tts import SynthesisStage
from .muxing import RemuxStage

__all__ = [
    "BaseStage",
    "StageContext",
    "StageResult",
    "SOURCE_VIDEO",
    "AudioExtractStage",
    "TranscriptionStage",
    "TranslationStage",
    "SynthesisStage",
    "RemuxStage",
]
