"""
Translation Stage
=================

Translates the transcript with a LibreTranslate-compatible HTTP service.

Request:  POST <url> {"q": text, "source": src, "target": tgt, "format": "text"}
Response: {"translatedText": "..."}

Transport errors, timeouts and HTTP error statuses are NetworkFailure. A
response that arrives but carries no usable translatedText is a
ValidationFailure. The translation is written to <job_id>.<lang>.txt
before the stage reports success.
"""

from pathlib import Path

import requests

from quickdub.errors import NetworkFailure, ValidationFailure
from quickdub.state import Stage
from quickdub.stages.base import BaseStage, StageContext, write_text_artifact


EMPTY_TRANSLATION = "Translation returned empty"


def extract_translated_text(data) -> str:
    """The translatedText field of a service response, or ''"""
    if not isinstance(data, dict):
        return ""
    translated = data.get("translatedText")
    if not isinstance(translated, str):
        return ""
    return translated


class TranslationStage(BaseStage):
    """
    Input: <job_id>.txt
    Output: <job_id>.<target_lang>.txt
    """

    stage = Stage.TRANSLATE
    requires = (Stage.TRANSCRIBE,)
    missing_output_message = EMPTY_TRANSLATION

    def build_payload(self, text: str) -> dict:
        return {
            "q": text,
            "source": self.config.translate.source_lang,
            "target": self.config.translate.target_lang,
            "format": "text",
        }

    def request_translation(self, text: str) -> requests.Response:
        settings = self.config.translate
        try:
            resp = requests.post(
                settings.url,
                json=self.build_payload(text),
                headers={"Content-Type": "application/json"},
                timeout=settings.timeout_sec,
            )
            resp.raise_for_status()
        except requests.Timeout as e:
            raise NetworkFailure(
                f"Translation service timed out after {settings.timeout_sec:g}s",
                detail=str(e),
                timed_out=True,
            ) from e
        except requests.RequestException as e:
            raise NetworkFailure("Translation request failed", detail=str(e)) from e
        return resp

    def process(self, ctx: StageContext) -> Path:
        settings = self.config.translate
        transcript = ctx.job.artifact(Stage.TRANSCRIBE).read_text(encoding="utf-8", errors="replace")

        self.logger.info(
            "[%s] Translating %d chars (%s -> %s)",
            ctx.job.job_id, len(transcript), settings.source_lang, settings.target_lang,
        )
        resp = self.request_translation(transcript)

        try:
            data = resp.json()
        except ValueError as e:
            raise ValidationFailure(EMPTY_TRANSLATION, detail=f"response is not JSON: {e}") from e

        translated = extract_translated_text(data)
        if not translated.strip():
            raise ValidationFailure(EMPTY_TRANSLATION, detail="no translatedText in response")

        return write_text_artifact(ctx.paths.translation, translated)
