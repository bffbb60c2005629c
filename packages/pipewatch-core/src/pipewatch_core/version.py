"""Version information for pipewatch-core."""

VERSION = "0.1.0"
