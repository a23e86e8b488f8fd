"""
Runtime settings. Module constants with environment overrides.
"""
import os

ENV = os.environ.get("ENV", "development").lower()
DEV = ENV in ("development", "dev", "test")

DEFAULT_SAMPLE_RATE = int(os.environ.get("REMIX_SAMPLE_RATE", "48000"))
DEFAULT_CHANNELS = int(os.environ.get("REMIX_CHANNELS", "1"))
FFMPEG_BIN = os.environ.get("REMIX_FFMPEG_BIN", "ffmpeg")
LOG_LEVEL = os.environ.get("REMIX_LOG_LEVEL", "INFO").upper()

# Decoded inputs longer than this are rejected before any processing.
MAX_DURATION_S = float(os.environ.get("REMIX_MAX_DURATION_S", "300"))
