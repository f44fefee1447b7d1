"""
Speech Synthesis Stage
======================

Runs a text-to-speech command (coqui `tts` by default) from a configurable
template. Placeholders:

    {text_file}  plain-text file holding the translation
    {out_path}   waveform the engine must write
    {lang}       target language code

The translation artifact is re-read from disk and copied to
<job_id>.for_tts.txt, so this stage depends only on files.

Some engines exit zero without writing anything (e.g. on unsupported
characters), so a missing waveform is a ValidationFailure of its own.
"""

from pathlib import Path

from quickdub.state import Stage
from quickdub.stages.base import BaseStage, StageContext, write_text_artifact


class SynthesisStage(BaseStage):
    """
    Input: <job_id>.<lang>.txt
    Output: <job_id>.<lang>.wav
    """

    stage = Stage.SYNTHESIZE
    requires = (Stage.TRANSLATE,)
    missing_output_message = "TTS output not found"

    def process(self, ctx: StageContext) -> Path:
        translated = ctx.job.artifact(Stage.TRANSLATE).read_text(encoding="utf-8", errors="replace")
        text_file = write_text_artifact(ctx.paths.tts_text, translated)
        out_path = ctx.paths.speech

        self.logger.info("[%s] Synthesizing speech -> %s", ctx.job.job_id, out_path.name)
        self.runner.run_template(
            self.config.tts.command,
            {
                "text_file": text_file,
                "out_path": out_path,
                "lang": self.config.translate.target_lang,
            },
        )
        return out_path
