# app.py - Musuq Delivery WhatsApp webhook service
import logging
import time
import threading
from typing import Any, Dict, Optional

from flask import Flask, request, jsonify

from config.settings import BotConfig
from database.manager import DeliveryDatabaseManager
from delivery import DeliveryFeeEstimator, DistanceDeliveryCostCalculator, HttpDeliveryCostClient
from utils.logging import setup_logging
from utils.message_validator import MessageValidator
from utils.rate_limiter import RateLimiter
from utils.thread_safe_session import ThreadSafeSessionManager
from whatsapp.client import WhatsAppClient
from workflow.actions import OrderManager
from workflow.handlers import MessageHandler
from workflow.thread_safe_handlers import ThreadSafeMessageHandler

logger = logging.getLogger(__name__)


class DeliveryBotWorkflow:
    """Wires storage, costing, conversation handling and WhatsApp delivery together"""

    def __init__(self, config: Dict[str, Any], repository=None, whatsapp_client=None,
                 cost_calculator=None, rate_limiter: Optional[RateLimiter] = None,
                 sweep_interval: float = 60.0):
        self.config = config
        self.sweep_interval = sweep_interval
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

        self.db = repository or DeliveryDatabaseManager(config.get('db_path', 'musuq_delivery.db'))
        self.whatsapp = whatsapp_client or WhatsAppClient(config)

        if cost_calculator is None:
            cost_calculator = self._build_cost_calculator()
        self.estimator = DeliveryFeeEstimator(cost_calculator)

        self.sessions = ThreadSafeSessionManager(
            session_timeout=int(config.get('session_idle_timeout', 1800))
        )
        self.rate_limiter = rate_limiter or RateLimiter()
        self.message_handler = MessageHandler(
            self.db,
            self.sessions,
            estimator=self.estimator,
            order_manager=OrderManager(self.db),
            address_book_enabled=config.get('address_book_enabled', True),
            interactive_prompts_enabled=config.get('interactive_prompts_enabled', True),
            support_phone=config.get('support_phone', '+51 999 999 999')
        )
        self.handler = ThreadSafeMessageHandler(self.message_handler, self.sessions)

        logger.info("✅ Delivery bot workflow initialized")

    def _build_cost_calculator(self):
        if self.config.get('delivery_api_url'):
            logger.info("🛵 Using remote delivery pricing API")
            return HttpDeliveryCostClient(
                self.config['delivery_api_url'],
                api_key=self.config.get('delivery_api_key')
            )

        logger.info("🛵 Using local distance-based delivery tariff")
        return DistanceDeliveryCostCalculator(
            self.db,
            base_fee=float(self.config.get('delivery_base_fee', 3.00)),
            fee_per_km=float(self.config.get('delivery_fee_per_km', 1.00))
        )

    def start_background_tasks(self):
        """Start the sweeper for idle sessions, their locks and stale rate-limit data"""
        if self._sweeper and self._sweeper.is_alive():
            return

        def cleanup_worker():
            while not self._stop_event.wait(self.sweep_interval):
                try:
                    self.sessions.cleanup_expired_sessions()
                    self.rate_limiter.cleanup_old_users()
                except Exception as e:
                    logger.error(f"❌ Background cleanup error: {e}")

        self._sweeper = threading.Thread(target=cleanup_worker, name='session-sweeper', daemon=True)
        self._sweeper.start()
        logger.info("🔄 Background session sweeper started")

    def stop_background_tasks(self):
        self._stop_event.set()

    def is_redelivery(self, message_data: Dict[str, Any]) -> bool:
        """True if this message id was already handled for the sender"""
        phone_number = MessageValidator.extract_phone_number(message_data)
        return bool(phone_number) and self.sessions.is_message_seen(phone_number, message_data.get('id'))

    def handle_whatsapp_message(self, message_data: Dict[str, Any]) -> Dict[str, Any]:
        return self.handler.handle_message(message_data)

    def send_whatsapp_message(self, phone_number: str, response_data: Dict[str, Any]) -> bool:
        return self.whatsapp.send_response(phone_number, response_data)

    def health_check(self) -> Dict:
        """Component health with session stats"""
        health_status = {
            'status': 'healthy',
            'components': {},
            'session_stats': self.sessions.get_session_stats(),
            'timestamp': time.time()
        }

        try:
            stats = self.db.get_database_stats()
            if not stats:
                raise RuntimeError('database statistics unavailable')
            health_status['components']['database'] = {'status': 'healthy', 'stats': stats}
        except Exception as e:
            health_status['components']['database'] = {'status': 'unhealthy', 'error': str(e)}
            health_status['status'] = 'degraded'

        health_status['components']['whatsapp'] = {
            'status': 'configured' if self.config.get('whatsapp_token') else 'unconfigured',
            'phone_number_id': self.config.get('phone_number_id')
        }
        health_status['components']['delivery_pricing'] = {
            'mode': 'remote' if self.config.get('delivery_api_url') else 'distance'
        }

        return health_status

    def simulate_message(self, phone_number: str, message_text: str, customer_name: str = "Cliente de prueba",
                         latitude: Optional[float] = None, longitude: Optional[float] = None) -> Dict:
        """Run a message through the conversation flow without sending a reply"""
        mock_message = {
            'from': phone_number,
            'id': f"sim_{time.time()}",
            'contacts': [{'profile': {'name': customer_name}}]
        }
        if latitude is not None and longitude is not None:
            mock_message['type'] = 'location'
            mock_message['location'] = {'latitude': latitude, 'longitude': longitude}
            if message_text:
                mock_message['location']['name'] = message_text
        else:
            mock_message['type'] = 'text'
            mock_message['text'] = {'body': message_text}

        return self.handle_whatsapp_message(mock_message)


def create_flask_app(config: Optional[Dict[str, Any]] = None, workflow: Optional[DeliveryBotWorkflow] = None,
                     rate_limiter: Optional[RateLimiter] = None, start_background_tasks: bool = True):
    """Create the Flask app; returns None when configuration is invalid"""
    app = Flask(__name__)

    if workflow is None:
        if config is None:
            try:
                config = BotConfig().get_config_dict()
                logger.info("✅ Configuration loaded and validated successfully")
            except ValueError as e:
                logger.error(f"❌ Configuration error: {e}")
                return None

        workflow = DeliveryBotWorkflow(config)

    if start_background_tasks:
        workflow.start_background_tasks()

    if rate_limiter is not None:
        workflow.rate_limiter = rate_limiter
    rate_limiter = workflow.rate_limiter
    app.config['WORKFLOW'] = workflow

    @app.route('/')
    def home():
        stats = workflow.sessions.get_session_stats()
        return jsonify({
            'service': 'Musuq Delivery WhatsApp Bot',
            'status': 'running',
            'active_sessions': stats['active_sessions'],
            'endpoints': ['/webhook', '/health', '/session-stats', '/orders/<phone_number>',
                          '/cleanup', '/simulate']
        }), 200

    @app.route('/webhook', methods=['GET'])
    def verify_webhook():
        mode = request.args.get('hub.mode')
        token = request.args.get('hub.verify_token')
        challenge = request.args.get('hub.challenge')

        result = workflow.whatsapp.verify_webhook(mode, token, challenge)
        return result if result else ("Verification failed", 403)

    @app.route('/webhook', methods=['POST'])
    def handle_webhook():
        """Process inbound WhatsApp messages and send the replies"""
        data = request.get_json(silent=True)

        if not data:
            return jsonify({'status': 'error', 'message': 'No data'}), 400

        if not workflow.whatsapp.validate_webhook_payload(data):
            return jsonify({'status': 'error', 'message': 'Invalid payload'}), 400

        messages = workflow.whatsapp.get_webhook_data(data)
        if not messages:
            return jsonify({'status': 'success', 'message': 'No messages'}), 200

        processed = 0
        for message in messages:
            phone_number = message.get('from')
            if not phone_number or not message.get('id'):
                continue

            # Redeliveries are skipped before they count against the sender's limits
            if workflow.is_redelivery(message):
                logger.info(f"🔄 Skipping redelivered message {message['id']}")
                continue

            allowed, rate_message = rate_limiter.is_allowed(phone_number)
            if not allowed:
                logger.warning(f"🚦 Rate limited {phone_number}")
                workflow.send_whatsapp_message(phone_number, {'type': 'text', 'content': f"⚠️ {rate_message}"})
                continue

            try:
                response = workflow.handle_whatsapp_message(message)
            except Exception as e:
                logger.error(f"❌ Error processing message from {phone_number}: {e}")
                continue

            if response.get('type') == 'duplicate':
                continue

            if workflow.send_whatsapp_message(phone_number, response):
                logger.info(f"✅ Processed message for {phone_number}")
            else:
                logger.error(f"❌ Failed to send response to {phone_number}")
            processed += 1

        return jsonify({'status': 'success', 'processed': processed}), 200

    @app.route('/health', methods=['GET'])
    def health_check():
        health = workflow.health_check()
        status_code = 200 if health['status'] == 'healthy' else 503
        return jsonify(health), status_code

    @app.route('/session-stats', methods=['GET'])
    def session_stats():
        return jsonify({
            'session_manager_stats': workflow.sessions.get_session_stats(),
            'database_stats': workflow.db.get_database_stats(),
            'timestamp': time.time()
        }), 200

    @app.route('/orders/<phone_number>', methods=['GET'])
    def order_history(phone_number):
        """Recent orders placed from a phone number"""
        limit = request.args.get('limit', default=20, type=int)
        orders = workflow.db.get_order_history(phone_number, limit=max(1, min(limit, 100)))
        return jsonify({'phone_number': phone_number, 'orders': orders, 'count': len(orders)}), 200

    @app.route('/cleanup', methods=['POST'])
    def cleanup():
        """Evict idle sessions and stale rate-limit entries now"""
        cleaned = workflow.sessions.cleanup_expired_sessions()
        rate_limiter.cleanup_old_users()
        return jsonify({
            'status': 'success',
            'cleaned_sessions': cleaned,
            'message': f'Cleaned {cleaned} expired sessions'
        }), 200

    @app.route('/simulate', methods=['POST'])
    def simulate():
        data = request.get_json(silent=True) or {}
        phone_number = str(data.get('phone_number', '51999000111'))
        message = data.get('message', 'hola')
        customer_name = data.get('customer_name', 'Cliente de prueba')

        response = workflow.simulate_message(
            phone_number, message, customer_name,
            latitude=data.get('latitude'), longitude=data.get('longitude')
        )

        return jsonify({
            'status': 'success',
            'simulation': {
                'input': {'phone_number': phone_number, 'message': message},
                'response': response
            }
        }), 200

    return app


def create_app():
    """Create app for WSGI servers (gunicorn 'app:create_app()')"""
    try:
        config = BotConfig()
    except ValueError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"❌ Configuration error: {e}")
        return None

    setup_logging(config.log_level, config.log_file)
    return create_flask_app(config.get_config_dict())


if __name__ == '__main__':
    flask_app = create_app()

    if flask_app:
        settings = flask_app.config['WORKFLOW'].config
        port = settings.get('port', 5000)

        logger.info("🚀 Starting Musuq Delivery WhatsApp Bot...")
        logger.info(f"🔗 Health Check: http://localhost:{port}/health")
        logger.info(f"🔗 Session Stats: http://localhost:{port}/session-stats")

        flask_app.run(
            host=settings.get('host', '0.0.0.0'),
            port=port,
            debug=False,
            threaded=True
        )
    else:
        logger.error("❌ Failed to initialize Musuq Delivery bot")
