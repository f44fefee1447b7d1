"""
Audio Extraction Stage
======================

Transcodes the source video's audio to 16-bit PCM, mono, at the configured
sample rate (16 kHz by default), the input format whisper expects.
"""

from pathlib import Path

from quickdub.state import Stage
from quickdub.stages.base import BaseStage, StageContext, SOURCE_VIDEO


class AudioExtractStage(BaseStage):
    """
    Input: source video
    Output: <job_id>.wav
    """

    stage = Stage.AUDIO_EXTRACT
    requires = (SOURCE_VIDEO,)
    missing_output_message = "Extracted audio not found"

    def build_command(self, video_path: Path, wav_path: Path) -> list:
        media = self.config.media
        return [
            media.ffmpeg_binary,
            "-y",
            "-i", str(video_path),
            "-vn",
            "-acodec", "pcm_s16le",
            "-ar", str(media.sample_rate),
            "-ac", "1",
            str(wav_path),
        ]

    def process(self, ctx: StageContext) -> Path:
        wav_path = ctx.paths.audio
        self.logger.info("[%s] Extracting audio -> %s", ctx.job.job_id, wav_path.name)
        self.runner.run(self.build_command(ctx.job.source_video_path, wav_path))
        return wav_path
