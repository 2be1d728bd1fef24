# File: tests/conftest.py

import os
import sys
import tempfile
from pathlib import Path

import pytest

# 1. Add project root to path
sys.path.append(str(Path(__file__).resolve().parent.parent))

# 2. Keep the server's log file out of the working tree
os.environ.setdefault("MCP_YOUTUBE_LOG_FILE", os.path.join(tempfile.gettempdir(), "mcp_youtube_tests.log"))

from youtube_transcript import ExtractorError

TEST_VIDEO_URL = "https://www.youtube.com/watch?v=x99-eKSyUqU"

SAMPLE_METADATA_OUTPUT = """Sample Title
Sample description line 1
Sample description line 2"""

SAMPLE_VTT = """WEBVTT

00:00:00.000 --> 00:00:01.000
Hello world!

00:00:01.500 --> 00:00:03.000
This is a test.
"""

PATH_TOO_LONG = ExtractorError(
    "yt-dlp exited with code 1: ERROR: unable to open for writing: [Errno 36] File name too long",
    returncode=1,
)


class FakeYtDlp:
    """Stands in for the yt-dlp process.

    Subtitle calls write `vtt` to the requested output template, the way
    yt-dlp names files (`<id>.<lang>.vtt`). `failures` lists what successive
    subtitle calls raise; None means that call succeeds.
    """

    def __init__(self, metadata_output=SAMPLE_METADATA_OUTPUT, vtt=SAMPLE_VTT,
                 failures=None, write_captions=True, metadata_error=None):
        self.metadata_output = metadata_output
        self.vtt = vtt
        self.failures = list(failures or [])
        self.write_captions = write_captions
        self.metadata_error = metadata_error
        self.calls = []

    def __call__(self, args):
        self.calls.append(list(args))

        if "--print" in args:
            if self.metadata_error:
                raise self.metadata_error
            return self.metadata_output

        if "--write-sub" in args:
            if self.failures:
                failure = self.failures.pop(0)
                if failure is not None:
                    raise failure
            if self.write_captions:
                self._write_transcript(args)
            return ""

        return ""

    def _write_transcript(self, args):
        template = args[args.index("--output") + 1]
        language = args[args.index("--sub-lang") + 1]
        path = template.replace("%(id)s", "test-video").replace("%(ext)s", f"{language}.vtt")
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.vtt)

    @property
    def subtitle_calls(self):
        return [call for call in self.calls if "--write-sub" in call]

    @property
    def output_templates(self):
        return [call[call.index("--output") + 1] for call in self.subtitle_calls]


@pytest.fixture
def fake_ytdlp():
    return FakeYtDlp()
