"""
Broker connectivity for the samplers.

- ConnectionManager: one lazily created connection with host failover
- ChannelProvisioner: channel on demand plus idempotent topology
- AmqpSession: both of the above, owned by one sampler
"""

from .channel import ChannelProvisioner, ChannelSetup
from .connection import DEFAULT_HEARTBEAT, ConnectionManager
from .session import AmqpSession

__all__ = [
    "AmqpSession",
    "ChannelProvisioner",
    "ChannelSetup",
    "ConnectionManager",
    "DEFAULT_HEARTBEAT",
]
