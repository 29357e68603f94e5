"""Markdown task board backend: parser, writer, cache and realtime updates."""

__version__ = "0.1.0"
