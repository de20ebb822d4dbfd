"""
Evince: a read-through caching gateway for Quicksilver chain metrics.

Validator lists, delegations and zone info are read from chain nodes over
Tendermint RPC; APR and supply figures come from auxiliary REST services.
Every payload is cached with a resource-specific TTL.
"""

__version__ = "0.1.0"
