"""Daemon core: signalling, supervision, fingerprinting, rotation state."""
