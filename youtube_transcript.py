"""
YouTube transcript fetching module.

Retrieves a video's captions and basic metadata through the yt-dlp command line
tool and turns the raw WebVTT/SRT subtitle output into clean plain text.

This module implements the transcript pipeline used by the MCP server:
1. Primary: yt-dlp writes the caption track using the video ID as file name
2. Fallback: when the primary attempt hits a path-length error, one retry with
   a short timestamp-based file name
3. Cleaning: cue numbers, timing lines, markup and rolling duplicates removed

Features:
- Private scratch directory per call, always removed afterwards
- Caller-owned scratch directories left untouched
- Typed errors (MetadataError, TranscriptError, NoTranscriptError)
- Pluggable process runner for testing

Usage:
    from youtube_transcript import get_youtube_transcript, get_video_metadata
    try:
        print(get_video_metadata("https://youtu.be/VIDEO_ID").title)
        print(get_youtube_transcript("https://youtu.be/VIDEO_ID", language="en"))
    except YouTubeError as e:
        print(f"Failed: {e}")
"""

import contextlib
import logging
import os
import re
import shlex
import shutil
import subprocess
import sys
import tempfile
import time
from typing import Callable, Dict, Iterator, List, Optional

# Set up logging
logger = logging.getLogger(__name__)

# Subtitle language used when the caller does not ask for one
DEFAULT_LANGUAGE = os.environ.get('YOUTUBE_TRANSCRIPT_LANGUAGE', 'en')

# Command used to launch yt-dlp; defaults to the yt_dlp module of this interpreter
YTDLP_COMMAND = os.environ.get('YTDLP_COMMAND', '')


def _parse_timeout(value: Optional[str]) -> Optional[float]:
    """Parse YTDLP_TIMEOUT; unset or invalid values mean no timeout."""
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid YTDLP_TIMEOUT value {value!r}; running yt-dlp without a timeout")
        return None


# Optional process timeout in seconds (no timeout when unset)
YTDLP_TIMEOUT = _parse_timeout(os.environ.get('YTDLP_TIMEOUT'))

CAPTION_EXTENSIONS = ('.vtt', '.srt')

# Error messages that point at an output path the platform could not create
PATH_LENGTH_SIGNATURES = (
    'File name too long',
    'ENAMETOOLONG',
    'Errno 36',
    'ENOENT',
    'No such file or directory',
)

METADATA_PRINT_FORMAT = '%(title)s\n%(description)s'

_MARKUP_RE = re.compile(r'<[^>]*>')
_CUE_NUMBER_RE = re.compile(r'[0-9]+')


# ===== ERRORS ===== #

class YouTubeError(Exception):
    """Base class for every failure surfaced by this module."""


class MetadataError(YouTubeError):
    """Video metadata could not be retrieved."""


class TranscriptError(YouTubeError):
    """The transcript pipeline failed."""


class NoTranscriptError(TranscriptError):
    """yt-dlp ran but no usable caption track was produced."""


class ExtractorError(Exception):
    """The yt-dlp process could not be launched or exited with an error."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


# ===== DATA TYPES ===== #

class VideoMetadata:
    """Class to hold video metadata."""

    def __init__(self, title: str, description: str):
        self.title = title
        self.description = description

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "description": self.description}

    def __repr__(self):
        return f"VideoMetadata(title={self.title!r}, description={self.description!r})"


class TranscriptRequest:
    """A single transcript request.

    Args:
        url: Video URL (required, non-empty)
        language: Subtitle language code, DEFAULT_LANGUAGE when omitted
        scratch_dir: Caller-owned directory for yt-dlp output. When omitted the
            pipeline creates a private temporary directory and removes it.

    Raises:
        ValueError: If the URL is empty
    """

    def __init__(self, url: str, language: Optional[str] = None, scratch_dir: Optional[str] = None):
        if not url or not url.strip():
            raise ValueError("A video URL is required")
        self.url = url.strip()
        self.language = language or DEFAULT_LANGUAGE
        self.scratch_dir = scratch_dir


# ===== PROCESS RUNNER ===== #

def _ytdlp_command() -> List[str]:
    if YTDLP_COMMAND:
        return shlex.split(YTDLP_COMMAND)
    return [sys.executable, '-m', 'yt_dlp']


def run_ytdlp(args: List[str]) -> str:
    """Run yt-dlp with the given arguments and return its stdout.

    Args:
        args: Command line arguments passed to yt-dlp

    Returns:
        The process's standard output

    Raises:
        ExtractorError: If the process cannot be launched, times out or exits non-zero
    """
    command = _ytdlp_command() + list(args)
    logger.debug(f"Running: {shlex.join(command)}")

    try:
        completed = subprocess.run(
            command,
            capture_output=True,
            text=True,
            encoding='utf-8',
            errors='replace',
            timeout=YTDLP_TIMEOUT,
        )
    except subprocess.TimeoutExpired as e:
        raise ExtractorError(f"yt-dlp timed out after {e.timeout} seconds") from e
    except OSError as e:
        raise ExtractorError(f"Failed to launch yt-dlp: {e}") from e

    if completed.returncode != 0:
        stderr = (completed.stderr or '').strip()
        # yt-dlp prints the actual reason on its last ERROR line
        error_lines = [line for line in stderr.splitlines() if line.startswith('ERROR')]
        detail = error_lines[-1] if error_lines else stderr
        raise ExtractorError(
            f"yt-dlp exited with code {completed.returncode}: {detail}",
            returncode=completed.returncode,
            stderr=stderr,
        )

    return completed.stdout or ''


# ===== UTILITY FUNCTIONS ===== #

def clean_transcript(content: str) -> str:
    """Convert raw WebVTT/SRT cue content into deduplicated plain text.

    Cue numbers, timing lines, the WEBVTT header and inline markup are removed.
    Only lines inside a cue (after a timing line, before the next blank line)
    are kept. Auto-generated captions repeat phrases across overlapping cues,
    so each distinct line is emitted once, at its first occurrence.

    Args:
        content: Raw subtitle file content

    Returns:
        Cleaned transcript, one caption line per output line
    """
    cleaned_text = ''
    in_cue_text = False
    seen_lines = set()

    for line in content.split('\n'):
        stripped_line = line.strip()

        # Cue sequence number
        if _CUE_NUMBER_RE.fullmatch(stripped_line):
            continue

        if '-->' in stripped_line:
            in_cue_text = True
            continue

        if not stripped_line:
            in_cue_text = False
            continue

        if stripped_line == 'WEBVTT':
            continue

        if in_cue_text:
            clean_line = _MARKUP_RE.sub('', stripped_line).strip()
            if clean_line and clean_line not in seen_lines:
                cleaned_text += f"{clean_line}\n"
                seen_lines.add(clean_line)

    return cleaned_text.rstrip()


def parse_metadata_output(output: str) -> VideoMetadata:
    """Split yt-dlp's printed "title\\ndescription" output into VideoMetadata."""
    title, _, description = output.partition('\n')
    return VideoMetadata(title=title.strip(), description=description.strip())


def is_path_length_error(error: BaseException) -> bool:
    """Return True if the error looks like an output path the platform rejected."""
    message = str(error)
    return any(signature in message for signature in PATH_LENGTH_SIGNATURES)


def find_caption_files(directory: str) -> List[str]:
    """List caption files (.vtt/.srt) in a directory, sorted by name."""
    return sorted(
        name for name in os.listdir(directory)
        if name.endswith(CAPTION_EXTENSIONS) and os.path.isfile(os.path.join(directory, name))
    )


@contextlib.contextmanager
def scratch_directory(path: Optional[str] = None) -> Iterator[str]:
    """Yield a directory for yt-dlp output.

    A caller-supplied path is yielded as is and never removed. Otherwise a
    private temporary directory is created and removed on exit, whatever the
    outcome of the block.

    Raises:
        TranscriptError: If the private directory cannot be created
    """
    if path:
        yield path
        return

    try:
        private_dir = tempfile.mkdtemp(prefix='yt-')
    except OSError as e:
        raise TranscriptError(f"Failed to create scratch directory: {e}") from e

    try:
        yield private_dir
    finally:
        try:
            shutil.rmtree(private_dir)
        except OSError as e:
            logger.warning(f"Failed to remove scratch directory {private_dir}: {e}")


# ===== FETCHER ===== #

class YouTubeTranscriptFetcher:
    """Class to fetch transcripts and metadata from YouTube videos via yt-dlp.

    The transcript pipeline runs yt-dlp once with a video-ID based output name.
    If that attempt fails because the output path was too long for the
    platform, it retries exactly once with a short timestamp-based name. The
    caption file is read, cleaned and the scratch directory released.
    """

    def __init__(self, runner: Optional[Callable[[List[str]], str]] = None):
        """Initialize the fetcher.

        Args:
            runner: Callable taking yt-dlp arguments and returning stdout,
                raising ExtractorError on failure. Defaults to run_ytdlp.
        """
        self.runner = runner or run_ytdlp

    def get_video_metadata(self, url: str) -> VideoMetadata:
        """Get the title and description of a video.

        Args:
            url: Video URL

        Returns:
            VideoMetadata with trimmed title and description

        Raises:
            MetadataError: If yt-dlp fails or cannot be launched
        """
        args = ['--skip-download', '--print', METADATA_PRINT_FORMAT, url]
        try:
            output = self.runner(args)
        except ExtractorError as e:
            logger.error(f"Error getting video metadata: {e}")
            raise MetadataError(f"Failed to get video metadata: {e}") from e

        return parse_metadata_output(output)

    def get_transcript(
        self,
        url: str,
        language: Optional[str] = None,
        scratch_dir: Optional[str] = None
    ) -> str:
        """
        Get the cleaned transcript for a video.

        Args:
            url: Video URL
            language: Subtitle language code (defaults to DEFAULT_LANGUAGE)
            scratch_dir: Optional caller-owned directory for yt-dlp output

        Returns:
            Non-empty cleaned transcript text

        Raises:
            ValueError: If the URL is empty
            NoTranscriptError: If the video has no caption track for the language
            TranscriptError: If yt-dlp fails, including after the fallback retry
        """
        return self.fetch(TranscriptRequest(url, language, scratch_dir))

    def fetch(self, request: TranscriptRequest) -> str:
        """Run the transcript pipeline for a TranscriptRequest."""
        with scratch_directory(request.scratch_dir) as directory:
            primary_template = os.path.join(directory, '%(id)s.%(ext)s')
            try:
                return self._attempt(request, directory, primary_template)
            except NoTranscriptError:
                raise
            except (ExtractorError, OSError) as e:
                if not is_path_length_error(e):
                    logger.error(f"Error fetching transcript with yt-dlp: {e}")
                    raise TranscriptError(f"Failed to get transcript: {e}") from e
                logger.warning(
                    "Filename too long error detected, attempting fallback with timestamp-based filename"
                )

            fallback_template = os.path.join(directory, f"yt_{int(time.time() * 1000)}.%(ext)s")
            try:
                return self._attempt(request, directory, fallback_template, fallback=True)
            except (TranscriptError, ExtractorError, OSError) as e:
                logger.error(f"yt-dlp fallback also failed: {e}")
                raise TranscriptError(f"Failed to get transcript even with fallback filename: {e}") from e

    def _attempt(self, request: TranscriptRequest, directory: str, output_template: str,
                 fallback: bool = False) -> str:
        """Run yt-dlp once, then read and clean the caption file it wrote."""
        logger.info(f"Fetching {request.language} subtitles for {request.url} into {output_template}")
        self.runner(self._subtitle_args(request, output_template))

        subtitle_files = find_caption_files(directory)
        if not subtitle_files:
            logger.warning("No subtitle files found with yt-dlp")
            suffix = " (fallback attempt)" if fallback else ""
            raise NoTranscriptError(f"No transcript found for this video{suffix}")

        with open(os.path.join(directory, subtitle_files[0]), 'r', encoding='utf-8', errors='replace') as f:
            content = f.read()

        transcript = clean_transcript(content)
        if not transcript:
            raise NoTranscriptError(f"Caption file {subtitle_files[0]} contains no transcript text")

        logger.info(f"Extracted transcript from {subtitle_files[0]}, length: {len(transcript)}")
        return transcript

    @staticmethod
    def _subtitle_args(request: TranscriptRequest, output_template: str) -> List[str]:
        return [
            '--write-sub',
            '--write-auto-sub',
            '--sub-lang', request.language,
            '--skip-download',
            '--sub-format', 'vtt',
            '--output', output_template,
            '--verbose',
            request.url,
        ]


# ===== PUBLIC API FUNCTIONS ===== #

def get_youtube_transcript(
    url: str,
    language: Optional[str] = None,
    scratch_dir: Optional[str] = None
) -> str:
    """
    Convenience function to get a transcript without creating a fetcher instance.

    Args:
        url: Video URL
        language: Subtitle language code (defaults to DEFAULT_LANGUAGE)
        scratch_dir: Optional caller-owned directory for yt-dlp output

    Returns:
        Cleaned transcript text
    """
    return YouTubeTranscriptFetcher().get_transcript(url, language, scratch_dir)


def get_video_metadata(url: str) -> VideoMetadata:
    """Convenience function to get video metadata without creating a fetcher instance."""
    return YouTubeTranscriptFetcher().get_video_metadata(url)
