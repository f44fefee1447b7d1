"""
QuickDub - Upload-and-Dub Video Service
=======================================

Turns an uploaded video into a dubbed one:
- Audio extraction (ffmpeg)
- Speech-to-text (whisper.cpp)
- Machine translation (LibreTranslate)
- Speech synthesis (coqui tts, or any templated command)
- Remux of the new speech track into the original video
"""

__version__ = "0.1.0"
__author__ = "QuickDub Team"
