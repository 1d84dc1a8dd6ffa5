#!/usr/bin/env python3
"""
PUSD Protocol - Main Application Entry Point

Deploys the PUSD token, collateral price feeds and the controller into an
in-process contract engine and serves the REST API on top of them.

Usage:
    python main.py [options]

Options:
    --config FILE       JSON deployment file (collateral, variant, fee rate, admin key)
    --port PORT         API server port (default: 5000)
    --host HOST         API server host (default: 0.0.0.0)
    --secret-key KEY    JWT signing key (default: random per process)
    --log-level LEVEL   Logging level (default: INFO)
    --debug             Enable debug mode
    --help              Show this help message

Examples:
    python main.py                         # Default deployment
    python main.py --config pusd.json      # Custom collateral set
    python main.py --port 8080 --debug     # Run on port 8080 with debug
"""

import sys
import json
import argparse
import signal
import logging
from typing import Dict, Any, Optional

from smart_contracts import create_contract_engine
from smart_contracts.financial import PUSDSystem, RISK_VARIANTS, create_pusd_system
from security.cryptography import ECDSAKeyPair
from api import DEFAULT_HOST, DEFAULT_PORT, PUSDAPI, health_check

logger = logging.getLogger(__name__)

# Deployment used when no --config is given
DEFAULT_CONFIG: Dict[str, Any] = {
    'variant': 'partial',
    'fee_rate': 3 * 10**15,  # 0.3%
    'collateral': [
        {'symbol': 'ETH', 'native': True, 'price': 2000 * 10**8},
        {'symbol': 'WBTC', 'decimals': 8, 'price': 30000 * 10**8}
    ]
}

def load_config(path: Optional[str]) -> Dict[str, Any]:
    """Read a deployment file and fill in defaults"""
    config = dict(DEFAULT_CONFIG)
    if path:
        with open(path, 'r') as f:
            config.update(json.load(f))

    if config.get('variant') not in RISK_VARIANTS:
        raise ValueError(f"variant must be one of {', '.join(RISK_VARIANTS)}")
    if not config.get('collateral'):
        raise ValueError("at least one collateral asset is required")
    for entry in config['collateral']:
        if 'symbol' not in entry or 'price' not in entry:
            raise ValueError("collateral entries need a symbol and a price")
    return config

class PUSDPlatform:
    """Main platform class that wires the engine, protocol and API"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.engine = None
        self.admin_key = None
        self.system: Optional[PUSDSystem] = None
        self.api: Optional[PUSDAPI] = None

    def deploy(self) -> PUSDSystem:
        """Deploy the protocol under the configured or a fresh admin identity"""
        self.engine = create_contract_engine()
        if self.config.get('admin_key'):
            # Exported with ECDSAKeyPair.export_private_key
            self.admin_key = ECDSAKeyPair.from_private_key(
                self.config['admin_key'], self.config.get('admin_key_password')
            )
        else:
            self.admin_key = ECDSAKeyPair.generate()
        admin = self.config.get('admin') or self.admin_key.get_address()

        self.system = create_pusd_system(
            self.engine,
            admin,
            self.config['collateral'],
            variant=self.config['variant'],
            fee_recipient=self.config.get('fee_recipient'),
            fee_rate=int(self.config.get('fee_rate', 0))
        )

        logger.info(f"Admin and price feed owner: {admin}")
        logger.info(f"PUSD deployed at {self.system.pusd}")
        logger.info(f"Controller deployed at {self.system.controller} ({self.config['variant']} liquidation)")
        for symbol, asset in self.system.collateral.items():
            logger.info(f"Collateral {symbol}: {asset} priced by {self.system.price_feeds[symbol]}")
        return self.system

    def serve(self, host=DEFAULT_HOST, port=DEFAULT_PORT, debug=False, secret_key=None):
        """Serve the REST API; blocks until the server stops"""
        self.api = PUSDAPI(self.system, secret_key=secret_key)
        self.api.run(host=host, port=port, debug=debug)

    def get_system_status(self) -> Dict[str, Any]:
        status = {
            'deployed': self.system is not None,
            'variant': self.config['variant'],
            'collateral': list(self.system.collateral) if self.system else []
        }
        if self.api:
            status['health'] = health_check(self.api)
        return status

def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='PUSD Protocol',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument('--config', default=None,
                        help='JSON deployment file')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                        help='API server port (default: 5000)')
    parser.add_argument('--host', default=DEFAULT_HOST,
                        help='API server host (default: 0.0.0.0)')
    parser.add_argument('--secret-key', default=None,
                        help='JWT signing key (default: random per process)')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: INFO)')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug mode')

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    def signal_handler(signum, frame):
        logger.info("Stopping PUSD protocol")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        platform = PUSDPlatform(load_config(args.config))
        platform.deploy()
        platform.serve(host=args.host, port=args.port, debug=args.debug, secret_key=args.secret_key)
    except Exception as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

if __name__ == '__main__':
    main()
