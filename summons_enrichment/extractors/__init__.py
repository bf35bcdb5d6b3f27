"""Extractors for the video evidence page and the summons PDF."""
