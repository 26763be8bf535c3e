"""FastPlayer - waveform extraction and caching for a desktop media player."""

__version__ = "0.1.0"
