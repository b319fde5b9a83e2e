"""Local search over repo memory notes and agent conversation transcripts."""

__version__ = "0.1.0"
