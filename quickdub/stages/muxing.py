"""
Remux Stage
===========

Combines the original video stream with the synthesized speech:

    ffmpeg -y -i video.mp4 -i speech.wav \
           -map 0:v -map 1:a \
           -c:v copy -c:a aac -b:a 192k \
           -metadata:s:a:0 language=hin -metadata:s:a:0 title="Hindi (Dubbed)" \
           <job_id>.dub.mp4

The video stream is copied untouched; the original audio is dropped.
The existence of the output file is the job's final success signal.
"""

from pathlib import Path

from quickdub.state import Stage
from quickdub.stages.base import BaseStage, StageContext, SOURCE_VIDEO


class RemuxStage(BaseStage):
    """
    Input: source video, <job_id>.<lang>.wav
    Output: <job_id>.dub.mp4
    """

    stage = Stage.REMUX
    requires = (SOURCE_VIDEO, Stage.SYNTHESIZE)
    missing_output_message = "Dubbed video not found"

    # Language code to FFmpeg metadata; other codes are written as given
    LANG_NAMES = {
        "hi": ("hin", "Hindi"),
        "id": ("ind", "Indonesian"),
        "en": ("eng", "English"),
    }

    def build_command(self, video_path: Path, speech_path: Path, output_path: Path) -> list:
        media = self.config.media
        lang = self.config.translate.target_lang
        ffmpeg_lang, lang_name = self.LANG_NAMES.get(lang, (lang, lang.upper()))

        cmd = [media.ffmpeg_binary, "-y"]  # -y to overwrite
        cmd.extend(["-i", str(video_path)])
        cmd.extend(["-i", str(speech_path)])

        # Video from input 0, audio from input 1
        cmd.extend(["-map", "0:v", "-map", "1:a"])

        cmd.extend(["-c:v", "copy"])
        cmd.extend(["-c:a", media.audio_codec, "-b:a", media.audio_bitrate])

        cmd.extend([
            "-metadata:s:a:0", f"language={ffmpeg_lang}",
            "-metadata:s:a:0", f"title={lang_name} (Dubbed)",
        ])

        cmd.append(str(output_path))
        return cmd

    def process(self, ctx: StageContext) -> Path:
        output_path = ctx.paths.output
        self.logger.info("[%s] Remuxing -> %s", ctx.job.job_id, output_path.name)
        self.runner.run(
            self.build_command(
                ctx.job.source_video_path,
                ctx.job.artifact(Stage.SYNTHESIZE),
                output_path,
            )
        )
        return output_path
