"""
Fleet trip replay: timeline playback and live trip metrics
"""

__version__ = "1.0.0"
