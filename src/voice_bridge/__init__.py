"""Pairing relay for full-duplex voice chat between agents and browser clients.

The relay issues short-lived pairing codes to agent processes, binds an agent
connection to a client connection once a code is redeemed, and forwards
messages between the two for the lifetime of the session.
"""

__version__ = "0.1.0"
