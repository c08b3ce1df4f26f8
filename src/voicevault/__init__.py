"""voicevault - catalog and player for local spoken-audio collections."""

__version__ = "0.4.0"
