"""Collaborator bridges: container runtime and packet capture."""
