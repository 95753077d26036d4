"""
Constants and network configurations for TANOS swaps.

This module contains curve parameters, hash tags, protocol bounds and
network configuration mappings used throughout the application.
"""

from typing import Dict, Any
from embit.networks import NETWORKS as EMBIT_NETWORKS

# secp256k1 curve parameters
SECP256K1_FIELD_SIZE = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# BIP-340 / BIP-341 tagged hash tags
TAG_CHALLENGE = b"BIP0340/challenge"
TAG_TAPTWEAK = b"TapTweak"
TAG_LOCK = b"TANOS/lock"

# Nonce sampling bound for the even-parity retry loop.
# Each attempt succeeds with probability 1/2, so exhaustion happens with
# probability 2^-128.
MAX_NONCE_ATTEMPTS = 128

# Taproot output script prefix: OP_1 OP_PUSHBYTES_32
P2TR_SCRIPT_PREFIX = b'\x51\x20'

# Swap phase deadlines (seconds)
DEFAULT_FUNDING_TIMEOUT = 3600.0
DEFAULT_REVEAL_TIMEOUT = 3600.0
DEFAULT_BROADCAST_TIMEOUT = 60.0
FUNDING_POLL_INTERVAL = 10.0

# Default claim transaction fee (satoshis)
DEFAULT_CLAIM_FEE = 500

# Electrum server ports
ELECTRUM_SSL_PORT = 50002
ELECTRUM_TCP_PORT = 50001

# Socket and host defaults
SOCKET_TIMEOUT = None  # No timeout for normal operations (blocks indefinitely)
SHUTDOWN_TIMEOUT = 0.5  # Short timeout for connection cleanup (SSL terminating proxies)

# Bitcoin constants
SATS_PER_BTC = 100_000_000
DUST_LIMIT = 330  # P2TR dust threshold

# Network configurations
# Map our network names to embit network names
NETWORK_MAP = {
    'mainnet': 'main',
    'testnet': 'test',
    'testnet4': 'test',  # testnet4 uses same config as testnet
    'signet': 'signet',
    'regtest': 'regtest',
}

# Network display names
NETWORKS = {
    'mainnet': {'name': 'Bitcoin Mainnet', 'embit_key': 'main'},
    'testnet': {'name': 'Bitcoin Testnet', 'embit_key': 'test'},
    'testnet4': {'name': 'Bitcoin Testnet4', 'embit_key': 'test'},
    'signet': {'name': 'Bitcoin Signet', 'embit_key': 'signet'},
    'regtest': {'name': 'Bitcoin Regtest', 'embit_key': 'regtest'},
}


def get_network_config(network: str) -> Dict[str, Any]:
    """
    Get embit network configuration for given network name.

    Args:
        network: Network name ('mainnet', 'testnet', etc.)

    Returns:
        Network configuration dictionary from embit
    """
    embit_key = NETWORK_MAP.get(network, 'main')
    return EMBIT_NETWORKS[embit_key]


def get_network_display_name(network: str) -> str:
    """Get display name for a network (e.g., "Bitcoin Mainnet")."""
    network_info = NETWORKS.get(network, NETWORKS['mainnet'])
    return network_info['name']
