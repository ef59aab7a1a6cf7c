"""
System constants that should never change.

These are engine/protocol facts, not user preferences.
User-configurable values belong in config.yaml instead.
"""

# Logging
VERBOSE_LOGGING_THRESHOLD = 2  # -vv switches to DEBUG with logger names

# Virtual filesystem names owned by the orchestrator
INPUT_BASENAME = "input"
STICKER_ASSET_NAME = "sticker.png"
HASH_OUTPUT_NAME = "output.md5"
SOURCE_HASH_OUTPUT_NAME = "input.md5"

# Raw engine stream labels
SOURCE_VIDEO_PAD = "0:v"
SOURCE_AUDIO_PAD = "0:a"
STICKER_VIDEO_PAD = "1:v"

# Option parameter ranges
MIN_SATURATION = 0.0
MAX_SATURATION = 3.0
MIN_PITCH = 0.5
MAX_PITCH = 2.0
MIN_LIGHTNESS = -100.0
MAX_LIGHTNESS = 100.0
MIN_SPLIT_COUNT = 2

# Unit conversion
BITS_PER_KILOBIT = 1000
SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600

# Report formatting
REPORT_LABEL_WIDTH = 22
REPORT_VALUE_WIDTH = 28

# Random option values
RANDOM_VALUE_DECIMALS = 2
RANDOM_FRAME_RATES = (24.0, 25.0, 29.97, 30.0, 50.0, 60.0)
RANDOM_RESOLUTIONS = ((640, 360), (854, 480), (1280, 720), (1920, 1080))
RANDOM_STICKER_SIZE = (20, 200)
RANDOM_AUDIO_BITRATE_KBPS = (64, 320)
RANDOM_VIDEO_BITRATE_KBPS = (500, 8000)
RANDOM_MAX_TRIM_SECONDS = 2.0
RANDOM_MAX_PADDING = 16
RANDOM_MAX_SPLIT_COUNT = 5
