"""
udptunnel - carry UDP datagrams across a single TCP connection.

One process runs in exactly one role:
    server  accepts one inbound TCP connection and relays it to a local UDP peer
    client  connects to a remote server and relays to its own local UDP peer
"""

__version__ = "0.3.0"
