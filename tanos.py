#!/usr/bin/env python3
"""
TANOS - Taproot Adaptor signatures for Nostr-Originated Swaps
Atomically trade a Schnorr-signed Nostr event for a Taproot payment
Async demo runner using tanos_lib
"""

import asyncio
import argparse
import sys
import logging
import uuid

from tanos_lib import __version__
from tanos_lib.core.address import parse_private_key
from tanos_lib.core.constants import (
    ELECTRUM_SSL_PORT, ELECTRUM_TCP_PORT, SOCKET_TIMEOUT, NETWORKS,
    DEFAULT_CLAIM_FEE, DEFAULT_FUNDING_TIMEOUT, DEFAULT_REVEAL_TIMEOUT,
    DUST_LIMIT, get_network_display_name,
)
from tanos_lib.core.errors import InvalidKeyError
from tanos_lib.core.models import SwapConfig, SwapTerms
from tanos_lib.backend.chain import ElectrumChain, MemoryChain
from tanos_lib.backend.clients import ElectrumClient
from tanos_lib.frontend.cli import CLIFrontend
from tanos_lib.app import SwapApp

# Set up logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger('tanos')


async def async_main(args) -> int:
    """
    Async main function - coordinates all async operations.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 for error)
    """
    frontend = CLIFrontend(quiet=args.quiet, assume_yes=args.yes)

    try:
        seller_key = parse_private_key(args.seller_key) if args.seller_key else None
        buyer_key = parse_private_key(args.buyer_key) if args.buyer_key else None
    except InvalidKeyError as e:
        frontend.show_error(f"Invalid private key: {e}")
        return 1

    terms = SwapTerms(
        swap_id=args.swap_id or uuid.uuid4().hex[:16],
        content=args.message,
        amount=args.amount
    )
    config = SwapConfig(
        network=args.network,
        funding_timeout=args.funding_timeout,
        reveal_timeout=args.reveal_timeout,
        claim_fee=args.fee
    )
    network_name = get_network_display_name(args.network)

    try:
        if not args.electrum_host:
            logger.info("No Electrum server configured, using in-memory chain")
            app = SwapApp(MemoryChain(), frontend, config, network_name, use_nostr=not args.plain_message)
            return await app.run(terms, seller_key, buyer_key)

        protocol = 'SSL' if not args.plain_tcp else 'TCP'
        frontend.show_connection_info(args.electrum_host, args.electrum_port, protocol)
        client = ElectrumClient(
            host=args.electrum_host,
            port=args.electrum_port,
            use_ssl=not args.plain_tcp,
            verify_cert=not args.no_verify_cert,
            timeout=args.timeout
        )
        async with client.connect():
            version = await client.get_server_version()
            logger.info(f"Server version: {version}")
            app = SwapApp(ElectrumChain(client), frontend, config, network_name, use_nostr=not args.plain_message)
            return await app.run(terms, seller_key, buyer_key)

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Error: {e}")
        frontend.show_error(str(e))
        return 1


def main():
    """Main entry point - parse arguments and run async main."""
    parser = argparse.ArgumentParser(
        description='TANOS - atomically swap a Nostr event signature for a Taproot payment',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a full swap against an in-memory chain
  %(prog)s --message "hello" --amount 100000 --yes

  # Sign the raw message instead of a Nostr event
  %(prog)s --message "hello" --plain-message

  # Use a regtest Electrum server for funding and broadcast
  %(prog)s -n regtest --electrum-server localhost --plain-tcp
        """
    )

    # Swap options
    swap_group = parser.add_argument_group('swap options')
    swap_group.add_argument('--message', '-m', default='hello',
                            help='Message content the Seller signs (default: "hello")')
    swap_group.add_argument('--amount', '-a', type=int, default=100_000,
                            help='Amount locked by the Buyer in sats (default: 100000)')
    swap_group.add_argument('--fee', type=int, default=DEFAULT_CLAIM_FEE,
                            help=f'Claim transaction fee in sats (default: {DEFAULT_CLAIM_FEE})')
    swap_group.add_argument('--swap-id',
                            help='Swap identifier (default: random)')
    swap_group.add_argument('--plain-message', action='store_true',
                            help='Sign the raw message instead of a NIP-01 event id')
    swap_group.add_argument('--funding-timeout', type=float, default=DEFAULT_FUNDING_TIMEOUT,
                            help=f'Seconds to wait for the swap output to be funded (default: {DEFAULT_FUNDING_TIMEOUT:.0f})')
    swap_group.add_argument('--reveal-timeout', type=float, default=DEFAULT_REVEAL_TIMEOUT,
                            help=f'Seconds to wait for the Seller reveal (default: {DEFAULT_REVEAL_TIMEOUT:.0f})')

    # Key options
    key_group = parser.add_argument_group('key options')
    key_group.add_argument('--seller-key', '-s',
                           help='Seller private key (64 hex characters or WIF, default: random)')
    key_group.add_argument('--buyer-key', '-b',
                           help='Buyer private key (64 hex characters or WIF, default: random)')

    # Electrum server options (optional, for on-chain funding and broadcast)
    electrum_group = parser.add_argument_group('electrum server options (optional)')
    electrum_group.add_argument('--electrum-server', dest='electrum_host',
                                help='Electrum server host (default: in-memory chain)')
    electrum_group.add_argument('--electrum-port', type=int,
                                help=f'Electrum server port (default: {ELECTRUM_SSL_PORT} for SSL, {ELECTRUM_TCP_PORT} for TCP)')
    electrum_group.add_argument('--plain-tcp', action='store_true',
                                help='Use plain TCP instead of SSL (default: SSL)')
    electrum_group.add_argument('--no-verify-cert', action='store_true',
                                help='Disable SSL certificate verification (default: enabled)')
    electrum_group.add_argument('--timeout', type=float, default=SOCKET_TIMEOUT,
                                help='Socket timeout in seconds (default: no timeout)')

    # Output options
    parser.add_argument('--yes', '-y', action='store_true',
                        help='Do not ask for confirmation before locking funds')
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='Disable progress output')
    parser.add_argument('--network', '-n', choices=list(NETWORKS.keys()), default='regtest',
                        help='Bitcoin network to use (default: regtest)')
    parser.add_argument('--log-level', '-l',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        default='WARNING', help='Logging level (default: WARNING)')
    parser.add_argument('--version', '-v', action='version', version=f'%(prog)s {__version__}')

    args = parser.parse_args()

    # Set root logger level so all tanos.* loggers inherit it
    logging.getLogger().setLevel(getattr(logging, args.log_level))

    if args.amount - args.fee < DUST_LIMIT:
        parser.error(f"Amount minus fee must be at least {DUST_LIMIT} sats")
    if args.fee < 0:
        parser.error(f"Fee must not be negative, got {args.fee}")

    if args.electrum_host:
        if args.electrum_port:
            if not (1 <= args.electrum_port <= 65535):
                parser.error(f"Electrum port must be between 1 and 65535, got {args.electrum_port}")
        else:
            args.electrum_port = ELECTRUM_TCP_PORT if args.plain_tcp else ELECTRUM_SSL_PORT

    if args.timeout is not None and args.timeout <= 0:
        parser.error(f"Timeout must be positive or omitted for no timeout, got {args.timeout}")

    exit_code = asyncio.run(async_main(args))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
