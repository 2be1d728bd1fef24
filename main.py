#!/usr/bin/env python
"""
MCP-YouTube: A service for fetching YouTube video transcripts and metadata.

This module implements an MCP (Model Context Protocol) server that exposes a tool
for downloading a video's captions as clean plain text, together with its title
and description, for use with Large Language Models (LLMs).

Main features:
- MCP server implementation using stdio (default) or HTTP transport
- Caption extraction through yt-dlp with a short-filename fallback
- Cue cleaning and deduplication of rolling auto-generated captions
- Metadata and transcript fetched concurrently

Usage:
    # Run as MCP server (stdio transport)
    python main.py

    # Test with a specific URL
    python main.py --test "https://www.youtube.com/watch?v=VIDEO_ID" [language]
"""

import json
import logging
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Dict

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from youtube_transcript import YouTubeTranscriptFetcher, YouTubeError

# Setup logging to file instead of stdout when running as MCP server
# This prevents print statements from interfering with stdio transport
# When in test mode, log to console; otherwise log only to file
LOG_FILE = os.getenv('MCP_YOUTUBE_LOG_FILE', 'mcp_youtube.log')
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOG_FILE),
        logging.StreamHandler() if "--test" in sys.argv else logging.NullHandler()
    ]
)
logger = logging.getLogger("mcp_youtube")

# Use this for output instead of print() to avoid interfering with MCP stdio transport
def log_info(message):
    if "--test" in sys.argv:
        print(message)  # Print to console in test mode
    else:
        logger.info(message)  # Log to file in MCP server mode


# ===== MCP SERVER INITIALIZATION ===== #

# Initialize MCP server with FastMCP library
mcp = FastMCP("YouTube Transcript Server")

# Configure transport mode
# Options: "stdio" (default), "http", "streamable-http", "sse"
DEFAULT_TRANSPORT = os.getenv('MCP_TRANSPORT', 'stdio')
HTTP_PORT = int(os.getenv('MCP_HTTP_PORT', '8085'))
HTTP_HOST = os.getenv('MCP_HTTP_HOST', '0.0.0.0')
HTTP_TRANSPORTS = ("http", "streamable-http", "sse")


# ===== YOUTUBE HANDLING FUNCTIONS ===== #

def fetch_video_payload(
    url: str,
    language: Optional[str] = None,
    fetcher: Optional[YouTubeTranscriptFetcher] = None
) -> Dict[str, str]:
    """Fetch the transcript and metadata of a video.

    Both yt-dlp invocations run concurrently; they use separate scratch
    space and share no state.

    Args:
        url: Video URL
        language: Optional subtitle language code
        fetcher: Fetcher to use (a default one is created when omitted)

    Returns:
        Dictionary with title, description and transcript

    Raises:
        YouTubeError: If either the transcript or the metadata could not be fetched
        ValueError: If the URL is empty
    """
    fetcher = fetcher or YouTubeTranscriptFetcher()

    # Clean up URL - remove quotes and brackets that might be accidentally included
    url = (url or "").strip().strip('"\'[]')
    if not url:
        raise ValueError("A video URL is required")

    log_info(f"Processing YouTube URL: {url}")
    with ThreadPoolExecutor(max_workers=2) as executor:
        transcript_future = executor.submit(fetcher.get_transcript, url, language)
        metadata_future = executor.submit(fetcher.get_video_metadata, url)
        transcript = transcript_future.result()
        metadata = metadata_future.result()

    log_info(f"Successfully extracted transcript for '{metadata.title}', length: {len(transcript)}")
    return {
        "title": metadata.title,
        "description": metadata.description,
        "transcript": transcript,
    }


def run_download_tool(
    url: str,
    language: Optional[str] = None,
    fetcher: Optional[YouTubeTranscriptFetcher] = None
) -> Dict[str, str]:
    """Tool body: fetch the payload and report failures as MCP tool errors."""
    try:
        return fetch_video_payload(url, language, fetcher)
    except (YouTubeError, ValueError) as e:
        log_info(f"Error: {str(e)}")
        raise ToolError(f"YouTube API Error: {str(e)}") from e


# ===== MCP TOOL DEFINITION ===== #

@mcp.tool(
    name="download_youtube_url",
    description="Download YouTube video transcript and metadata",
    output_schema={
        "type": "object",
        "properties": {
            "title": {
                "type": "string",
                "description": "Title of the video"
            },
            "description": {
                "type": "string",
                "description": "Description of the video (may be empty)"
            },
            "transcript": {
                "type": "string",
                "description": "Plain text transcript with timing, markup and repeated lines removed"
            }
        },
        "required": ["title", "description", "transcript"]
    }
)
def download_youtube_url(
    url: str,  # URL of the video
    language: Optional[str] = None  # Subtitle language code, e.g. "en" or "ja"
) -> dict:
    """Download the transcript, title and description of a YouTube video."""
    return run_download_tool(url, language)


# ===== COMMAND-LINE TEST MODE ===== #

def try_download_youtube_url(url, language=None):
    """Run the tool logic once without starting the MCP server.

    Prints the JSON payload, or the error, for command-line testing with --test.
    """
    log_info(f"Testing download_youtube_url with URL: {url}")
    try:
        payload = fetch_video_payload(url, language)
    except (YouTubeError, ValueError) as e:
        log_info(f"Test failed: {str(e)}")
        return None

    log_info(json.dumps(payload, ensure_ascii=False, indent=2))
    return payload


# ===== MAIN ENTRY POINT ===== #

def main():
    """Main entry point for the application.

    Handles command-line arguments to either:
    1. Run in test mode with a specific URL (and optional language)
    2. Start the MCP server with the configured transport
    """
    # Check if URL is provided as command line argument for testing
    if len(sys.argv) > 1 and sys.argv[1] == "--test":
        if len(sys.argv) > 2:
            language = sys.argv[3] if len(sys.argv) > 3 else None
            if try_download_youtube_url(sys.argv[2], language) is None:
                sys.exit(1)
        else:
            log_info("Please provide a URL to test")
            log_info("Usage: python main.py --test <url> [language]")
        return

    # Start normal MCP server mode
    log_info("Starting YouTube Transcript Server")

    transport = DEFAULT_TRANSPORT
    log_info(f"Using {transport} transport mode")

    if transport in HTTP_TRANSPORTS:
        log_info(f"Starting HTTP server on {HTTP_HOST}:{HTTP_PORT}")
        mcp.run(transport=transport, port=HTTP_PORT, host=HTTP_HOST)
    else:
        mcp.run(transport=transport)


if __name__ == "__main__":
    main()
