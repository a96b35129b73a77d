"""LiveScribe: live audio segmentation and transcription dispatch."""

__version__ = "0.1.0"
