"""Static output profiles: container, codecs and encoder options."""

from dataclasses import dataclass

from replayclip.errors import ErrorKind, PipelineError


@dataclass(frozen=True)
class OutputProfile:
    name: str
    format: str
    video_codec: str
    audio_codec: str
    options: tuple[str, ...] = ()


OUTPUT_PROFILES: dict[str, OutputProfile] = {
    # High quality archive copy
    "archive": OutputProfile(
        name="archive",
        format="mp4",
        video_codec="libx264",
        audio_codec="aac",
        options=("-preset", "medium", "-crf", "18", "-movflags", "+faststart"),
    ),
    # Twitter/X, Instagram
    "social": OutputProfile(
        name="social",
        format="mp4",
        video_codec="libx264",
        audio_codec="aac",
        options=(
            "-preset", "fast", "-crf", "23",
            "-maxrate", "8M", "-bufsize", "16M",
            "-movflags", "+faststart",
        ),
    ),
    "web": OutputProfile(
        name="web",
        format="webm",
        video_codec="libvpx-vp9",
        audio_codec="libopus",
        options=("-crf", "30", "-b:v", "0", "-deadline", "good"),
    ),
    # Intra-frame mezzanine for NLE import
    "editing": OutputProfile(
        name="editing",
        format="mov",
        video_codec="prores_ks",
        audio_codec="pcm_s16le",
        options=("-profile:v", "2", "-vendor", "apl0"),
    ),
}

DEFAULT_PROFILE_FOR_FORMAT = {
    "mp4": "archive",
    "webm": "web",
    "mov": "editing",
}


def resolve_profile(output_format: str, name: str | None = None) -> OutputProfile:
    """Look up the profile by name, or the default one for *output_format*."""
    if name is None:
        name = DEFAULT_PROFILE_FOR_FORMAT.get(output_format)
        if name is None:
            raise PipelineError(
                ErrorKind.TRANSCODE_FAILED,
                f"Unsupported output format: {output_format!r}",
            )

    profile = OUTPUT_PROFILES.get(name)
    if profile is None:
        raise PipelineError(
            ErrorKind.TRANSCODE_FAILED,
            f"Unknown output profile: {name!r} "
            f"(available: {', '.join(sorted(OUTPUT_PROFILES))})",
        )
    return profile
