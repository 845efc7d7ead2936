"""Forensic rotation: collection, archiving, replacement, scheduling."""
