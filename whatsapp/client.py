import requests
import logging
from typing import Dict, Any, Optional, List
from requests.adapters import HTTPAdapter

from utils.constants import APIConfig, MessageTypes

logger = logging.getLogger(__name__)


class WhatsAppClient:
    """WhatsApp Business Cloud API client for outbound replies"""

    def __init__(self, config: Dict[str, str], timeout: float = 15.0):
        self.whatsapp_token = config.get('whatsapp_token')
        self.phone_number_id = config.get('phone_number_id')
        self.verify_token = config.get('verify_token')
        self.timeout = timeout

        self.base_url = f"{APIConfig.WHATSAPP_BASE_URL}/{APIConfig.WHATSAPP_API_VERSION}"

        self.headers = {
            'Authorization': f'Bearer {self.whatsapp_token}',
            'Content-Type': 'application/json'
        }

        self.session = self._create_session()

        logger.info(f"✅ WhatsApp client initialized with phone ID: {self.phone_number_id}")

    def _create_session(self) -> requests.Session:
        """Pooled session; replies are sent once and never retried"""
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _make_request(self, method: str, url: str, **kwargs) -> Optional[requests.Response]:
        """Perform one HTTP request, returning None on transport or server errors"""
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)

            logger.debug(f"📡 {method} {url} - Status: {response.status_code}")

            if response.status_code == 401:
                logger.error("❌ Authentication failed - check WhatsApp token")
                return None
            elif response.status_code == 403:
                logger.error("❌ Permission denied - check API permissions")
                return None
            elif response.status_code == 429:
                logger.warning("⚠️ Rate limit exceeded by WhatsApp API")
                return None
            elif response.status_code >= 500:
                logger.warning(f"⚠️ WhatsApp server error {response.status_code}")
                return None

            return response

        except requests.exceptions.ConnectionError as e:
            logger.error(f"❌ Connection error: {e}")
            return None
        except requests.exceptions.Timeout as e:
            logger.error(f"❌ Request timeout: {e}")
            return None
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ Request failed: {e}")
            return None

    def _post_message(self, payload: Dict, description: str) -> bool:
        url = f"{self.base_url}/{self.phone_number_id}/messages"
        response = self._make_request('POST', url, headers=self.headers, json=payload)

        if response is not None and response.status_code == 200:
            logger.info(f"✅ {description} sent successfully")
            return True

        logger.error(f"❌ Failed to send {description}: "
                     f"{response.status_code if response is not None else 'No response'}")
        if response is not None:
            logger.error(f"Response: {response.text}")
        return False

    def send_text_message(self, to: str, message: str) -> bool:
        """Send a text message; failures are logged and reported as False"""
        payload = {
            'messaging_product': 'whatsapp',
            'to': to,
            'type': 'text',
            'text': {'body': message}
        }

        logger.info(f"📤 Sending text message to {to}")
        return self._post_message(payload, 'Text message')

    def send_interactive_message(self, to: str, header_text: str, body_text: str,
                                 footer_text: str, buttons: List[Dict]) -> bool:
        """Send a quick-reply button message"""
        if not buttons or len(buttons) > APIConfig.MAX_QUICK_REPLY_BUTTONS:
            logger.error(f"❌ Invalid number of buttons: {len(buttons or [])}")
            return False

        interactive_payload = {
            'type': 'button',
            'body': {'text': body_text},
            'action': {'buttons': buttons}
        }
        if header_text:
            interactive_payload['header'] = {'type': 'text', 'text': header_text}
        if footer_text:
            interactive_payload['footer'] = {'text': footer_text}

        payload = {
            'messaging_product': 'whatsapp',
            'to': to,
            'type': 'interactive',
            'interactive': interactive_payload
        }

        logger.info(f"📤 Sending interactive message to {to}")
        return self._post_message(payload, 'Interactive message')

    def send_response(self, phone_number: str, response_data: Dict[str, Any]) -> bool:
        """Send a handler response; button prompts fall back to their text version"""
        message_type = response_data.get('type', MessageTypes.TEXT)

        if message_type == MessageTypes.TEXT:
            return self.send_text_message(phone_number, response_data.get('content', ''))

        if message_type == MessageTypes.INTERACTIVE_BUTTONS:
            sent = self.send_interactive_message(
                phone_number,
                response_data.get('header_text', ''),
                response_data.get('body_text', ''),
                response_data.get('footer_text', ''),
                response_data.get('buttons', [])
            )
            if sent:
                return True
            logger.warning(f"⚠️ Interactive message failed for {phone_number}, sending text version")
            return self.send_text_message(phone_number, response_data.get('content', ''))

        logger.warning(f"Unsupported message type: {message_type}")
        return False

    def verify_webhook(self, mode: str, token: str, challenge: str) -> Optional[str]:
        """Verify webhook for WhatsApp subscription"""
        logger.info(f"🔐 Webhook verification attempt (mode: {mode})")

        if mode == 'subscribe' and token == self.verify_token:
            logger.info("✅ Webhook verified successfully!")
            return challenge

        logger.warning("❌ Webhook verification failed!")
        return None

    @staticmethod
    def validate_webhook_payload(payload: Optional[Dict]) -> bool:
        """True when the payload carries messages or statuses"""
        if not isinstance(payload, dict) or 'entry' not in payload:
            return False

        for entry in payload.get('entry') or []:
            for change in entry.get('changes') or []:
                if change.get('field') != 'messages':
                    continue

                value = change.get('value') or {}
                if 'messages' in value or 'statuses' in value:
                    return True

        return False

    def get_webhook_data(self, payload: Dict) -> List[Dict]:
        """Extract inbound messages; button replies become text, contacts are attached"""
        messages = []

        for entry in payload.get('entry') or []:
            for change in entry.get('changes') or []:
                if change.get('field') != 'messages':
                    continue

                value = change.get('value') or {}

                incoming_phone_id = (value.get('metadata') or {}).get('phone_number_id')
                if self.phone_number_id and incoming_phone_id and incoming_phone_id != self.phone_number_id:
                    logger.info(f"Ignoring webhook for phone_number_id {incoming_phone_id} "
                                f"(configured {self.phone_number_id})")
                    continue

                contacts = value.get('contacts') or []

                for message in value.get('messages') or []:
                    message = dict(message)

                    if message.get('type') == MessageTypes.INTERACTIVE:
                        reply = (message.get('interactive') or {}).get('button_reply') or {}
                        message['text'] = {'body': reply.get('id', '')}
                        message['type'] = MessageTypes.TEXT
                    elif message.get('type') == MessageTypes.BUTTON:
                        button = message.get('button') or {}
                        message['text'] = {'body': button.get('payload') or button.get('text', '')}
                        message['type'] = MessageTypes.TEXT

                    if contacts and 'contacts' not in message:
                        message['contacts'] = contacts

                    messages.append(message)

        return messages
