import os
import logging
from typing import Dict, Mapping, Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

TRUE_VALUES = ('1', 'true', 'yes', 'on')
FALSE_VALUES = ('0', 'false', 'no', 'off')


class BotConfig:
    """Centralized configuration for the delivery bot, read from the environment"""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        env = os.environ if environ is None else environ
        self._env = env

        missing = [var for var in ('WHATSAPP_TOKEN', 'PHONE_NUMBER_ID') if not env.get(var)]
        if missing:
            logger.error(f"❌ Missing required environment variables: {', '.join(missing)}")
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

        # Core credentials
        self.whatsapp_token = env.get('WHATSAPP_TOKEN')
        self.phone_number_id = env.get('PHONE_NUMBER_ID').lstrip('+')
        self.verify_token = env.get('VERIFY_TOKEN', 'musuq_verify_token')

        # Server configuration
        self.port = self._get_int('PORT', 5000)
        self.environment = env.get('ENVIRONMENT', 'development')
        self.debug_mode = self.environment == 'development'
        self.host = '0.0.0.0'
        self.log_level = env.get('LOG_LEVEL', 'INFO').upper()
        self.log_file = env.get('LOG_FILE') or None

        # Storage
        self.db_path = env.get('DATABASE_PATH', 'musuq_delivery.db')

        # Delivery costing
        self.delivery_api_url = env.get('DELIVERY_API_URL') or None
        self.delivery_api_key = env.get('DELIVERY_API_KEY') or None
        self.delivery_base_fee = self._get_float('DELIVERY_BASE_FEE', 3.00)
        self.delivery_fee_per_km = self._get_float('DELIVERY_FEE_PER_KM', 1.00)

        # Conversation behaviour
        self.session_idle_timeout = self._get_int('SESSION_IDLE_TIMEOUT', 1800)
        self.address_book_enabled = self._get_bool('ADDRESS_BOOK_ENABLED', True)
        self.interactive_prompts_enabled = self._get_bool('INTERACTIVE_PROMPTS_ENABLED', True)
        self.support_phone = env.get('SUPPORT_PHONE', '+51 999 999 999')

        if not self.validate_config():
            raise ValueError("Configuration validation failed. Check configured values.")

        self.print_safe_debug_info()

    def _get_int(self, name: str, default: int) -> int:
        raw = self._env.get(name)
        if raw in (None, ''):
            return default
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"{name} must be an integer, got '{raw}'")

    def _get_float(self, name: str, default: float) -> float:
        raw = self._env.get(name)
        if raw in (None, ''):
            return default
        try:
            return float(raw)
        except ValueError:
            raise ValueError(f"{name} must be a number, got '{raw}'")

    def _get_bool(self, name: str, default: bool) -> bool:
        raw = self._env.get(name)
        if raw in (None, ''):
            return default
        value = raw.strip().lower()
        if value in TRUE_VALUES:
            return True
        if value in FALSE_VALUES:
            return False
        raise ValueError(f"{name} must be true or false, got '{raw}'")

    def validate_config(self) -> bool:
        """Validate ranges and formats of the loaded values"""
        validation_errors = []

        if not self.phone_number_id.isdigit():
            validation_errors.append("PHONE_NUMBER_ID should be numeric")
        if not 0 < self.port < 65536:
            validation_errors.append("PORT must be between 1 and 65535")
        if self.delivery_base_fee < 0 or self.delivery_fee_per_km < 0:
            validation_errors.append("Delivery fees cannot be negative")
        if self.session_idle_timeout <= 0:
            validation_errors.append("SESSION_IDLE_TIMEOUT must be positive")
        if self.log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            validation_errors.append(f"LOG_LEVEL '{self.log_level}' is not a logging level")
        if self.delivery_api_url and not self.delivery_api_url.startswith(('http://', 'https://')):
            validation_errors.append("DELIVERY_API_URL must be an http(s) URL")

        for error in validation_errors:
            logger.error(f"❌ {error}")

        return not validation_errors

    def print_safe_debug_info(self):
        """Log configuration without exposing credentials"""
        logger.info("=" * 50)
        logger.info("🔧 MUSUQ DELIVERY CONFIGURATION")
        logger.info("=" * 50)
        logger.info(f"WHATSAPP_TOKEN: {'✅ Loaded' if self.whatsapp_token else '❌ Missing'}")
        logger.info(f"PHONE_NUMBER_ID: {self.phone_number_id}")
        logger.info(f"VERIFY_TOKEN: {'✅ Loaded' if self.verify_token else '❌ Missing'}")
        logger.info(f"DELIVERY_API: {'✅ ' + self.delivery_api_url if self.delivery_api_url else 'ℹ️ Local distance tariff'}")
        logger.info(f"DELIVERY_API_KEY: {'✅ Loaded' if self.delivery_api_key else 'ℹ️ Missing (Optional)'}")
        logger.info(f"ADDRESS_BOOK_ENABLED: {'✅ Yes' if self.address_book_enabled else '❌ No'}")
        logger.info(f"INTERACTIVE_PROMPTS_ENABLED: {'✅ Yes' if self.interactive_prompts_enabled else '❌ No'}")
        logger.info(f"SESSION_IDLE_TIMEOUT: {self.session_idle_timeout}s")
        logger.info(f"ENVIRONMENT: {self.environment}")
        logger.info(f"PORT: {self.port}")
        logger.info(f"DATABASE_PATH: {self.db_path}")
        logger.info("=" * 50)

    def get_config_dict(self) -> Dict:
        """Return configuration as dictionary"""
        return {
            'whatsapp_token': self.whatsapp_token,
            'phone_number_id': self.phone_number_id,
            'verify_token': self.verify_token,
            'db_path': self.db_path,
            'delivery_api_url': self.delivery_api_url,
            'delivery_api_key': self.delivery_api_key,
            'delivery_base_fee': self.delivery_base_fee,
            'delivery_fee_per_km': self.delivery_fee_per_km,
            'session_idle_timeout': self.session_idle_timeout,
            'address_book_enabled': self.address_book_enabled,
            'interactive_prompts_enabled': self.interactive_prompts_enabled,
            'support_phone': self.support_phone,
            'port': self.port,
            'environment': self.environment,
            'debug_mode': self.debug_mode,
            'host': self.host,
            'log_level': self.log_level,
            'log_file': self.log_file
        }
