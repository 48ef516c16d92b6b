# utils/rate_limiter.py

import time
import threading
import logging
from typing import Dict, Optional, Tuple
from collections import defaultdict, deque

logger = logging.getLogger(__name__)


class RateLimiter:
    """Per-phone sliding-window limiter for inbound messages

    A min_interval of 0 disables the burst check.
    """

    def __init__(self, max_messages_per_minute: int = 20, max_messages_per_hour: int = 200,
                 min_interval: float = 0.0, clock=time.time):
        self.max_per_minute = max_messages_per_minute
        self.max_per_hour = max_messages_per_hour
        self.min_interval = min_interval
        self._clock = clock
        self._lock = threading.Lock()

        self.user_messages = defaultdict(lambda: {
            'minute': deque(),
            'hour': deque()
        })
        self.last_message_time: Dict[str, float] = {}

    def is_allowed(self, phone_number: str) -> Tuple[bool, Optional[str]]:
        """Record the message and report whether it may be processed"""
        with self._lock:
            current_time = self._clock()

            last = self.last_message_time.get(phone_number)
            if last is not None and current_time - last < self.min_interval:
                return False, "Estás enviando mensajes muy rápido. Espera un momento."

            self._cleanup_old_entries(phone_number, current_time)
            user_data = self.user_messages[phone_number]

            if len(user_data['minute']) >= self.max_per_minute:
                return False, f"Límite alcanzado: máximo {self.max_per_minute} mensajes por minuto."

            if len(user_data['hour']) >= self.max_per_hour:
                return False, f"Límite alcanzado: máximo {self.max_per_hour} mensajes por hora."

            user_data['minute'].append(current_time)
            user_data['hour'].append(current_time)
            self.last_message_time[phone_number] = current_time

            return True, None

    def _cleanup_old_entries(self, phone_number: str, current_time: float):
        user_data = self.user_messages[phone_number]

        while user_data['minute'] and user_data['minute'][0] < current_time - 60:
            user_data['minute'].popleft()

        while user_data['hour'] and user_data['hour'][0] < current_time - 3600:
            user_data['hour'].popleft()

    def cleanup_old_users(self, max_idle: float = 86400) -> int:
        """Drop tracking data for users idle longer than max_idle seconds"""
        with self._lock:
            cutoff_time = self._clock() - max_idle
            stale = [phone for phone, last in self.last_message_time.items() if last < cutoff_time]

            for phone_number in stale:
                self.user_messages.pop(phone_number, None)
                self.last_message_time.pop(phone_number, None)

        if stale:
            logger.info(f"🧹 Cleaned up rate limit data for {len(stale)} inactive users")
        return len(stale)
