"""potwarden: honeypot lifecycle and forensic-capture orchestrator.

Runs pots (decoy workloads on dedicated Docker networks), captures each
pot's traffic to pcap, and on a fixed interval rotates every pot:
  - collects logs, filesystem diff, process list and a full dump
  - fingerprints the evidence (sha256 manifest) and archives it
  - replaces the compromised container with a clean one
  - resumes capture without touching any other pot
"""

__version__ = "0.1.0"
__description__ = "Honeypot lifecycle and forensic-capture orchestrator"

from potwarden.core.orchestrator import Warden
from potwarden.cli.app import app as cli

__all__ = ["Warden", "cli", "__version__"]
