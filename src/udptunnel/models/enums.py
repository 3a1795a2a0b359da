"""
Enumeration types for udptunnel.

This module defines the enumeration types shared across the tunnel for
role selection, relay lifecycle tracking and logging configuration.
"""

from enum import Enum


# =============================================================================
# Tunnel-Related Enums
# =============================================================================


class TunnelRole(str, Enum):
    """
    Operating role of a tunnel process, fixed at startup.

    - SERVER: Listens for one inbound TCP connection
    - CLIENT: Opens one outbound TCP connection to a remote server
    """

    SERVER = "server"
    CLIENT = "client"


class RelayState(str, Enum):
    """
    Relay engine lifecycle state.

    State transitions:
        INITIALIZING -> RELAYING (sockets ready)
        RELAYING -> CLOSED (TCP peer closed or errored)
    """

    INITIALIZING = "initializing"
    RELAYING = "relaying"
    CLOSED = "closed"


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels.

    Levels (from most to least verbose):
        - FULL: Complete trace with detailed stack information
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
