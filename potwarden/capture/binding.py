"""Deterministic pot -> capture interface binding.

Docker backs every user-defined bridge network with a Linux bridge named
``br-<first 12 hex chars of the network id>``, unless the network was
created with the ``com.docker.network.bridge.name`` driver option, in which
case that name is used verbatim.  Capturing on the bridge sees exactly the
pot's traffic and nothing from other pots.
"""

from __future__ import annotations

from potwarden.models.pots import PotNetwork

BRIDGE_NAME_OPTION = "com.docker.network.bridge.name"

# Linux IFNAMSIZ (16) minus the trailing NUL.
MAX_INTERFACE_NAME = 15


def bridge_interface(network: PotNetwork) -> str:
    """Return the host interface carrying *network*'s traffic."""
    explicit = network.options.get(BRIDGE_NAME_OPTION, "").strip()
    if explicit:
        return explicit[:MAX_INTERFACE_NAME]
    return f"br-{network.id[:12]}"
