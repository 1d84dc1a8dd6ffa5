"""API Module for the PUSD protocol

This module provides REST API endpoints for reading positions and prices and
for submitting position changes, liquidations and flash settings.

Features:
- RESTful API endpoints
- Price feed publishing by feed owners
- JWT authentication from signed login payloads
- Request validation
- Error handling
- CORS support
"""

import time

from .rest_api import (
    PUSDAPI,
    AuthResource,
    CollateralResource,
    PriceResource,
    PriceFeedResource,
    PositionResource,
    PositionActionResource,
    LiquidationResource,
    FlashConfigResource,
    HealthResource,
    create_app,
    parse_amount,
    validate_request,
    handle_api_error,
    require_auth
)

__all__ = [
    'PUSDAPI',
    'AuthResource',
    'CollateralResource',
    'PriceResource',
    'PriceFeedResource',
    'PositionResource',
    'PositionActionResource',
    'LiquidationResource',
    'FlashConfigResource',
    'HealthResource',
    'create_app',
    'parse_amount',
    'require_auth',
    'validate_request',
    'handle_api_error',
    'health_check'
]

__version__ = '1.0.0'
__author__ = 'PUSD Protocol Team'

# API Configuration
DEFAULT_PORT = 5000
DEFAULT_HOST = '0.0.0.0'

def health_check(api):
    """Perform API health check

    Args:
        api (PUSDAPI): Running API

    Returns:
        dict: Health status
    """
    try:
        stats = api.engine.get_engine_stats()
        controller_deployed = api.engine.vm.is_contract(api.system.controller)
        return {
            'status': 'healthy' if controller_deployed else 'unhealthy',
            'components': {
                'engine': stats,
                'controller': controller_deployed
            },
            'version': __version__,
            'timestamp': time.time()
        }
    except Exception as e:
        return {
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': time.time()
        }
