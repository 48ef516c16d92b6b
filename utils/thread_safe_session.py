# utils/thread_safe_session.py
"""
Thread-safe conversation session storage with per-customer locking
"""
import copy
import threading
import time
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from database.models import (
    CartLine, DeliveryAddress, DeliveryEstimate, MenuItem, Order, Restaurant, SavedAddress
)
from .constants import ConversationStates, SubStates
from .helpers import cart_subtotal

logger = logging.getLogger(__name__)


@dataclass
class ConversationSession:
    """Conversation state for one customer phone number"""
    phone_number: str
    state: str = ConversationStates.START
    substate: Optional[str] = None
    customer_name: Optional[str] = None
    customer_id: Optional[int] = None
    restaurant: Optional[Restaurant] = None
    restaurant_candidates: List[Restaurant] = field(default_factory=list)
    menu_candidates: List[MenuItem] = field(default_factory=list)
    cart: List[CartLine] = field(default_factory=list)
    delivery_address: Optional[DeliveryAddress] = None
    saved_addresses: List[SavedAddress] = field(default_factory=list)
    payment_method: Optional[str] = None
    delivery_estimate: DeliveryEstimate = field(default_factory=DeliveryEstimate)
    active_order: Optional[Order] = None
    choice_prompt_presented: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def transition(self, state: str, substate: Optional[str] = None):
        """Move to a state; a sub-state must belong to the target state"""
        if state not in ConversationStates.ALL:
            raise ValueError(f"Unknown conversation state: {state}")
        if substate is not None and SubStates.PARENTS.get(substate) != state:
            raise ValueError(f"Sub-state {substate} is not valid in state {state}")
        self.state = state
        self.substate = substate

    def reset(self):
        """Back to START, keeping the customer profile and saved addresses"""
        self.transition(ConversationStates.START)
        self.restaurant = None
        self.restaurant_candidates = []
        self.menu_candidates = []
        self.cart = []
        self.delivery_address = None
        self.payment_method = None
        self.delivery_estimate = DeliveryEstimate()
        self.active_order = None
        self.choice_prompt_presented = False

    @property
    def subtotal(self) -> float:
        return cart_subtotal(self.cart)

    def touch(self):
        self.updated_at = datetime.now()


class SessionRepository(ABC):
    """Key-value storage for conversation sessions"""

    @abstractmethod
    def get(self, phone_number: str) -> Optional[ConversationSession]:
        raise NotImplementedError

    @abstractmethod
    def put(self, session: ConversationSession):
        raise NotImplementedError

    @abstractmethod
    def delete(self, phone_number: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def items(self) -> Iterator[Tuple[str, ConversationSession]]:
        raise NotImplementedError


class InMemorySessionRepository(SessionRepository):
    """Process-local session storage; values are copied in and out"""

    def __init__(self):
        self._sessions: Dict[str, ConversationSession] = {}
        self._lock = threading.RLock()

    def get(self, phone_number: str) -> Optional[ConversationSession]:
        with self._lock:
            session = self._sessions.get(phone_number)
            return copy.deepcopy(session) if session else None

    def put(self, session: ConversationSession):
        with self._lock:
            self._sessions[session.phone_number] = copy.deepcopy(session)

    def delete(self, phone_number: str) -> bool:
        with self._lock:
            return self._sessions.pop(phone_number, None) is not None

    def items(self) -> Iterator[Tuple[str, ConversationSession]]:
        with self._lock:
            snapshot = list(self._sessions.items())
        return iter(snapshot)

    def __len__(self):
        with self._lock:
            return len(self._sessions)


class ThreadSafeSessionManager:
    """Session access with per-user locks, deduplication and idle eviction"""

    def __init__(self, repository: Optional[SessionRepository] = None,
                 session_timeout: int = 1800, lock_timeout: float = 10.0):
        self.repository = repository or InMemorySessionRepository()

        # Per-user locks to serialize processing of one customer's messages
        self._user_locks: Dict[str, threading.RLock] = {}
        self._locks_lock = threading.Lock()

        self._processed_messages: Dict[str, float] = {}
        self._message_lock = threading.Lock()
        self.dedup_window = 300

        self.session_timeout = session_timeout
        self.lock_timeout = lock_timeout

        logger.info("✅ Thread-safe session manager initialized")

    def get_user_lock(self, phone_number: str) -> threading.RLock:
        """Get or create the lock for a specific user"""
        with self._locks_lock:
            if phone_number not in self._user_locks:
                self._user_locks[phone_number] = threading.RLock()
            return self._user_locks[phone_number]

    @contextmanager
    def user_session_lock(self, phone_number: str):
        """Hold the user's lock for the duration of the block"""
        while True:
            user_lock = self.get_user_lock(phone_number)
            acquired = user_lock.acquire(timeout=self.lock_timeout)
            if not acquired:
                raise TimeoutError(f"Could not acquire lock for user {phone_number}")

            # The sweeper may have dropped this lock while we were waiting on it
            with self._locks_lock:
                current = self._user_locks.get(phone_number) is user_lock
            if current:
                break
            user_lock.release()

        logger.debug(f"🔒 Acquired lock for user {phone_number}")
        try:
            yield
        finally:
            user_lock.release()
            logger.debug(f"🔓 Released lock for user {phone_number}")

    def _prune_processed_messages(self, current_time: float):
        cutoff = current_time - self.dedup_window
        for key in [k for k, ts in self._processed_messages.items() if ts < cutoff]:
            del self._processed_messages[key]

    def is_message_seen(self, phone_number: str, message_id: Optional[str]) -> bool:
        """True if the message id was already handled, without recording it"""
        if not message_id:
            return False

        with self._message_lock:
            self._prune_processed_messages(time.time())
            return f"{phone_number}:{message_id}" in self._processed_messages

    def is_message_duplicate(self, phone_number: str, message_id: Optional[str]) -> bool:
        """Check and record a message id; True if it was already seen"""
        if not message_id:
            return False

        with self._message_lock:
            current_time = time.time()
            self._prune_processed_messages(current_time)

            key = f"{phone_number}:{message_id}"
            if key in self._processed_messages:
                logger.warning(f"🔄 Duplicate message detected: {key}")
                return True

            self._processed_messages[key] = current_time
            return False

    def get_session(self, phone_number: str, customer_name: Optional[str] = None) -> ConversationSession:
        """Return the user's session, creating a fresh one if absent or expired"""
        session = self.repository.get(phone_number)

        if session and self._is_session_expired(session):
            logger.info(f"⏰ Session expired for user {phone_number}")
            self.repository.delete(phone_number)
            session = None

        if session is None:
            session = ConversationSession(phone_number=phone_number, customer_name=customer_name)
            logger.debug(f"🆕 New session for user {phone_number}")
        elif customer_name and not session.customer_name:
            session.customer_name = customer_name

        return session

    def save_session(self, session: ConversationSession):
        session.touch()
        self.repository.put(session)
        logger.debug(f"💾 Saved session for user {session.phone_number}: {session.state}")

    def reset_session(self, session: ConversationSession) -> ConversationSession:
        session.reset()
        logger.info(f"🔄 Session reset for user {session.phone_number}")
        return session

    def _is_session_expired(self, session: ConversationSession) -> bool:
        idle = datetime.now() - session.updated_at
        return idle.total_seconds() > self.session_timeout

    def cleanup_expired_sessions(self) -> int:
        """Evict sessions idle longer than the timeout and drop their unused locks"""
        expired = [phone for phone, session in self.repository.items()
                   if self._is_session_expired(session)]

        for phone_number in expired:
            self.repository.delete(phone_number)

        released = self._release_idle_locks()

        if expired:
            logger.info(f"🧹 Cleaned up {len(expired)} expired sessions")
        if released:
            logger.debug(f"🧹 Released {released} idle user locks")
        return len(expired)

    def _release_idle_locks(self) -> int:
        """Drop locks of users without a session that no thread currently holds"""
        active = {phone for phone, _ in self.repository.items()}
        released = 0

        with self._locks_lock:
            for phone_number in [p for p in self._user_locks if p not in active]:
                user_lock = self._user_locks[phone_number]
                if not user_lock.acquire(blocking=False):
                    continue
                try:
                    del self._user_locks[phone_number]
                    released += 1
                finally:
                    user_lock.release()

        return released

    def get_session_stats(self) -> Dict:
        sessions = [session for _, session in self.repository.items()]
        states: Dict[str, int] = {}
        for session in sessions:
            states[session.state] = states.get(session.state, 0) + 1

        return {
            'active_sessions': len(sessions),
            'sessions_by_state': states,
            'session_timeout_minutes': self.session_timeout // 60,
            'user_locks_count': len(self._user_locks)
        }
