from flask import Flask, request, g, current_app
from flask_cors import CORS
from flask_restful import Api, Resource
from functools import wraps
import jwt
import secrets
import time
import logging
from typing import Any, Callable, Optional, List

from smart_contracts.engine import TransactionReceipt
from smart_contracts.financial import PUSDSystem, ProtocolError, is_native
from security.signatures import NonceTracker, RequestSigner, SignatureData, create_login_payload

logger = logging.getLogger(__name__)

TOKEN_LIFETIME = 3600  # 1 hour

class PUSDAPI:
    """REST API over a deployed PUSD system"""

    def __init__(self, system: PUSDSystem, secret_key: Optional[str] = None,
                 signer: Optional[RequestSigner] = None, clock: Callable[[], float] = time.time):
        self.app = Flask(__name__)
        self.app.config['SECRET_KEY'] = secret_key or secrets.token_hex(32)

        # Enable CORS for all routes
        CORS(self.app)

        # Initialize Flask-RESTful
        self.api = Api(self.app)

        self.system = system
        self.engine = system.engine
        self.signer = signer or RequestSigner()
        self.nonces = NonceTracker(self.signer.max_age)
        # Block time follows this clock on every call
        self.clock = clock
        self.started_at = time.time()

        # Register API routes
        self._register_routes()

    def _register_routes(self):
        """Register all API routes"""
        resources = [
            (AuthResource, '/api/auth/login'),
            (CollateralResource, '/api/collateral'),
            (PriceResource, '/api/oracle/price/<asset>'),
            (PriceFeedResource, '/api/oracle/feeds/<asset>'),
            (PositionResource, '/api/positions/<address>'),
            (PositionActionResource, '/api/positions'),
            (LiquidationResource, '/api/liquidations'),
            (FlashConfigResource, '/api/flash/config'),
            (HealthResource, '/api/health')
        ]
        for resource, route in resources:
            self.api.add_resource(resource, route, resource_class_kwargs={'api': self})

    def run(self, host='0.0.0.0', port=5000, debug=False):
        """Run the Flask application"""
        logger.info(f"Starting API server on {host}:{port}")
        self.app.run(host=host, port=port, debug=debug)

    # Helpers shared by resources

    def resolve_asset(self, asset: str) -> str:
        """Accept a collateral symbol or address"""
        return self.system.collateral.get(asset, asset)

    def issue_token(self, address: str) -> str:
        payload = {
            'address': address,
            'exp': int(time.time()) + TOKEN_LIFETIME
        }
        return jwt.encode(payload, self.app.config['SECRET_KEY'], algorithm='HS256')

    def sync_clock(self):
        """Advance the block clock to the wall clock; it never moves backwards"""
        with self.engine.lock:
            elapsed = int(self.clock()) - self.engine.vm.block_timestamp
            if elapsed > 0:
                self.engine.vm.warp(elapsed)

    def call(self, contract_address: str, function_name: str, args: List[Any], caller: str,
             value: int = 0) -> TransactionReceipt:
        self.sync_clock()
        return self.engine.call_contract(contract_address, function_name, args, caller, value)

    def transact(self, function_name: str, args: List[Any], caller: str, value: int = 0):
        return receipt_response(self.call(self.system.controller, function_name, args, caller, value))

    def query(self, function_name: str, *args) -> Any:
        return self.query_contract(self.system.controller, function_name, *args)

    def query_contract(self, contract_address: str, function_name: str, *args) -> Any:
        self.sync_clock()
        return self.engine.query(contract_address, function_name, list(args))

def parse_amount(value: Any, field: str) -> int:
    """Amounts travel as decimal strings of base units"""
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValueError(f"{field} must be an integer string")
    try:
        amount = int(value)
    except ValueError:
        raise ValueError(f"{field} must be an integer string") from None
    if amount < 0:
        raise ValueError(f"{field} cannot be negative")
    return amount

def validate_request(request_data, required_fields):
    """Validate API request data

    Args:
        request_data (dict): Request data to validate
        required_fields (list): List of required field names

    Returns:
        tuple: (is_valid, error_message)
    """
    if not isinstance(request_data, dict):
        return False, "Request data must be a JSON object"

    missing_fields = [field for field in required_fields if request_data.get(field) is None]
    if missing_fields:
        return False, f"Missing required fields: {', '.join(missing_fields)}"

    return True, None

def handle_api_error(error, status_code=500):
    """Handle API errors consistently

    Args:
        error (Exception or str): Error to handle
        status_code (int): HTTP status code

    Returns:
        dict: Error response
    """
    response = {
        'success': False,
        'error': str(error) if isinstance(error, Exception) else error,
        'status_code': status_code
    }
    if isinstance(error, Exception):
        response['error_type'] = type(error).__name__
    return response

def receipt_response(receipt: TransactionReceipt):
    if not receipt.success:
        return {
            'success': False,
            'error': receipt.error,
            'error_type': receipt.error_type,
            'transaction_hash': receipt.transaction_hash
        }, 400

    return {
        'success': True,
        'transaction_hash': receipt.transaction_hash,
        'gas_used': receipt.gas_used,
        'block_number': receipt.block_number,
        'events': [{'event': log['event'], 'data': stringify(log['data'])} for log in receipt.logs],
        'result': stringify(receipt.return_data)
    }

def stringify(value: Any) -> Any:
    """Render integers as strings so 18-decimal amounts survive JSON clients"""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, dict):
        return {key: stringify(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [stringify(item) for item in value]
    return value

def protocol_error_response(error: ProtocolError):
    return handle_api_error(error, 400), 400

def require_auth(f):
    """Decorator to require authentication for API endpoints"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = request.headers.get('Authorization')
        if not token:
            return {'error': 'No authorization token provided'}, 401

        try:
            # Remove 'Bearer ' prefix if present
            if token.startswith('Bearer '):
                token = token[7:]

            payload = jwt.decode(token, current_app.config['SECRET_KEY'], algorithms=['HS256'])
            g.address = payload['address']

        except jwt.ExpiredSignatureError:
            return {'error': 'Token has expired'}, 401
        except (jwt.InvalidTokenError, KeyError):
            return {'error': 'Invalid token'}, 401

        return f(*args, **kwargs)
    return decorated_function

class AuthResource(Resource):
    """Signed-challenge login"""

    def __init__(self, api):
        self.api = api

    def post(self):
        """Exchange a signed login payload for a bearer token"""
        data = request.get_json(silent=True) or {}
        address = data.get('address')
        nonce = data.get('nonce')
        signature = data.get('signature')

        if not address or not isinstance(nonce, str) or not nonce or not isinstance(signature, dict):
            return {'error': 'address, nonce and signature required'}, 400

        try:
            signature_data = SignatureData.from_dict(signature)
        except (KeyError, TypeError):
            return {'error': 'Malformed signature'}, 400

        payload = create_login_payload(address, nonce)
        if signature_data.address != address or not self.api.signer.verify_request(payload, signature_data):
            logger.warning(f"Rejected login for {address}")
            return {'error': 'Invalid signature'}, 401
        if not self.api.nonces.use(address, nonce, signature_data.timestamp):
            logger.warning(f"Rejected reused login nonce for {address}")
            return {'error': 'Nonce already used'}, 401

        return {
            'success': True,
            'address': address,
            'token': self.api.issue_token(address),
            'expires_in': TOKEN_LIFETIME
        }

class CollateralResource(Resource):
    """Allowed collateral"""

    def __init__(self, api):
        self.api = api

    def get(self):
        collateral = []
        for asset in self.api.query('get_allowed_collateral'):
            collateral.append({
                'symbol': self.api.system.symbol_of(asset),
                'asset': asset,
                'native': is_native(asset),
                'price_feed': self.api.query('get_collateral_price_feed', asset),
                'decimals': self.api.query('get_collateral_decimals', asset)
            })
        return {'collateral': collateral}

class PriceResource(Resource):
    """Validated collateral prices"""

    def __init__(self, api):
        self.api = api

    def get(self, asset):
        asset = self.api.resolve_asset(asset)
        try:
            decimals = self.api.query('get_collateral_decimals', asset)
            unit_value = self.api.query('get_usd_value', asset, 10**decimals)
        except ProtocolError as e:
            return protocol_error_response(e)

        feed = self.api.query('get_collateral_price_feed', asset)
        round_data = self.api.query_contract(feed, 'latest_round_data')
        return {
            'asset': asset,
            'symbol': self.api.system.symbol_of(asset),
            'usd_per_unit': str(unit_value),
            'round_id': round_data.round_id,
            'updated_at': round_data.updated_at
        }

class PriceFeedResource(Resource):
    """Raw feed rounds; the feed owner publishes new answers"""

    def __init__(self, api):
        self.api = api

    def feed_of(self, asset):
        asset = self.api.resolve_asset(asset)
        return self.api.query('get_collateral_price_feed', asset)

    def get(self, asset):
        try:
            feed = self.feed_of(asset)
        except ProtocolError as e:
            return protocol_error_response(e)

        round_data = self.api.query_contract(feed, 'latest_round_data')
        return {
            'price_feed': feed,
            'decimals': self.api.query_contract(feed, 'get_decimals'),
            'round_id': round_data.round_id,
            'answer': str(round_data.answer),
            'started_at': round_data.started_at,
            'updated_at': round_data.updated_at,
            'answered_in_round': round_data.answered_in_round
        }

    @require_auth
    def post(self, asset):
        """Publish a new answer as the authenticated feed owner"""
        data = request.get_json(silent=True) or {}
        is_valid, error = validate_request(data, ['answer'])
        if not is_valid:
            return {'error': error}, 400

        # Answers are signed; the controller refuses non-positive ones when it reads them
        answer = data['answer']
        if isinstance(answer, bool) or not isinstance(answer, (str, int)):
            return {'error': 'answer must be an integer string'}, 400
        try:
            answer = int(answer)
            feed = self.feed_of(asset)
        except ValueError:
            return {'error': 'answer must be an integer string'}, 400
        except ProtocolError as e:
            return protocol_error_response(e)

        receipt = self.api.call(feed, 'update_answer', [answer], g.address)
        if receipt.success and not receipt.return_data:
            logger.warning(f"{g.address} is not the owner of feed {feed}")
            return {'error': 'Only the feed owner can publish answers'}, 403
        if receipt.success:
            logger.info(f"Feed {feed} answer {answer} published by {g.address}")
        return receipt_response(receipt)

class PositionResource(Resource):
    """Read a user's position"""

    def __init__(self, api):
        self.api = api

    def get(self, address):
        balances = {}
        for asset in self.api.query('get_allowed_collateral'):
            label = self.api.system.symbol_of(asset) or asset
            balances[label] = str(self.api.query('get_collateral_balance_of_user', address, asset))

        try:
            debt, collateral_usd = self.api.query('get_account_information', address)
            health_factor = self.api.query('get_health_factor', address)
        except ProtocolError as e:
            return protocol_error_response(e)

        return {
            'address': address,
            'collateral': balances,
            'pusd_minted': str(debt),
            'collateral_value_usd': str(collateral_usd),
            'health_factor': str(health_factor)
        }

class PositionActionResource(Resource):
    """Position changes on behalf of the authenticated address"""

    ACTIONS = {
        'deposit': ['asset', 'amount'],
        'mint': ['amount'],
        'withdraw': ['asset', 'amount'],
        'burn': ['amount'],
        'deposit_and_mint': ['asset', 'amount_collateral', 'amount_to_mint'],
        'burn_and_withdraw': ['asset', 'amount_collateral', 'amount_to_burn'],
        'approve': ['asset', 'amount']
    }

    def __init__(self, api):
        self.api = api

    @require_auth
    def post(self):
        data = request.get_json(silent=True) or {}
        action = data.get('action')
        if action not in self.ACTIONS:
            return {'error': f"action must be one of {', '.join(self.ACTIONS)}"}, 400

        is_valid, error = validate_request(data, self.ACTIONS[action])
        if not is_valid:
            return {'error': error}, 400

        try:
            return getattr(self, f"_{action}")(g.address, data)
        except ValueError as e:
            return {'error': str(e)}, 400

    def _deposit(self, user, data):
        asset = self.api.resolve_asset(data['asset'])
        amount = parse_amount(data['amount'], 'amount')
        recipient = data.get('recipient') or user
        value = amount if is_native(asset) else 0
        return self.api.transact('deposit', [asset, recipient, amount], user, value)

    def _mint(self, user, data):
        return self.api.transact('mint', [parse_amount(data['amount'], 'amount')], user)

    def _withdraw(self, user, data):
        asset = self.api.resolve_asset(data['asset'])
        return self.api.transact('withdraw', [asset, parse_amount(data['amount'], 'amount')], user)

    def _burn(self, user, data):
        return self.api.transact('burn', [parse_amount(data['amount'], 'amount')], user)

    def _deposit_and_mint(self, user, data):
        asset = self.api.resolve_asset(data['asset'])
        amount_collateral = parse_amount(data['amount_collateral'], 'amount_collateral')
        amount_to_mint = parse_amount(data['amount_to_mint'], 'amount_to_mint')
        value = amount_collateral if is_native(asset) else 0
        return self.api.transact('deposit_and_mint', [asset, amount_collateral, amount_to_mint], user, value)

    def _burn_and_withdraw(self, user, data):
        asset = self.api.resolve_asset(data['asset'])
        amount_collateral = parse_amount(data['amount_collateral'], 'amount_collateral')
        amount_to_burn = parse_amount(data['amount_to_burn'], 'amount_to_burn')
        return self.api.transact('burn_and_withdraw', [asset, amount_collateral, amount_to_burn], user)

    def _approve(self, user, data):
        """Approve the controller to pull a collateral token or PUSD"""
        asset = data['asset']
        token = self.api.system.pusd if asset == 'PUSD' else self.api.resolve_asset(asset)
        if is_native(token):
            return {'error': 'Native collateral needs no approval'}, 400

        amount = parse_amount(data['amount'], 'amount')
        receipt = self.api.call(token, 'approve', [self.api.system.controller, amount], user)
        return receipt_response(receipt)

class LiquidationResource(Resource):
    """Liquidate unhealthy positions"""

    def __init__(self, api):
        self.api = api

    @require_auth
    def post(self):
        data = request.get_json(silent=True) or {}
        is_valid, error = validate_request(data, ['user', 'asset', 'debt_to_cover'])
        if not is_valid:
            return {'error': error}, 400

        try:
            debt_to_cover = parse_amount(data['debt_to_cover'], 'debt_to_cover')
        except ValueError as e:
            return {'error': str(e)}, 400

        asset = self.api.resolve_asset(data['asset'])
        return self.api.transact('liquidate', [data['user'], asset, debt_to_cover], g.address)

class FlashConfigResource(Resource):
    """Flash operation settings"""

    def __init__(self, api):
        self.api = api

    def get(self):
        config = self.api.query('get_flash_config')
        return {
            'flash': stringify(config),
            'risk_parameters': stringify(self.api.query('get_risk_parameters'))
        }

    @require_auth
    def post(self):
        """Change settings; the controller rejects callers other than its admin"""
        data = request.get_json(silent=True) or {}
        fee_recipient = data.get('fee_recipient')
        fee_rate = data.get('fee_rate')
        paused = data.get('paused')
        try:
            if fee_rate is not None:
                fee_rate = parse_amount(fee_rate, 'fee_rate')
        except ValueError as e:
            return {'error': str(e)}, 400
        if paused is not None:
            paused = bool(paused)

        if fee_recipient is None and fee_rate is None and paused is None:
            return {'error': 'Nothing to change'}, 400

        # One transaction, so a rejected setting leaves the others untouched
        return self.api.transact('update_flash_config', [fee_recipient, fee_rate, paused], g.address)

class HealthResource(Resource):
    """Service health"""

    def __init__(self, api):
        self.api = api

    def get(self):
        return {
            'status': 'healthy',
            'controller': self.api.system.controller,
            'pusd': self.api.system.pusd,
            'engine': self.api.engine.get_engine_stats(),
            'uptime': int(time.time() - self.api.started_at)
        }

# Main application factory
def create_app(system: PUSDSystem, secret_key: Optional[str] = None) -> Flask:
    """Create and configure the Flask application"""
    return PUSDAPI(system, secret_key=secret_key).app
