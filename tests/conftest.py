import pytest

from database.manager import DeliveryDatabaseManager
from database.models import DeliveryEstimate, MenuItem
from delivery.estimator import DeliveryFeeEstimator
from tests.fakes import PHONE, FakeCostCalculator, FakeRepository, pizza_menu
from utils.thread_safe_session import ThreadSafeSessionManager
from workflow.actions import OrderManager
from workflow.handlers import MessageHandler


@pytest.fixture
def repository():
    repo = FakeRepository()
    repo.add_restaurant(1, "Pizzería Don Mario", menu=pizza_menu(1),
                        opens_at="11:00", closes_at="23:00", latitude=-13.5226, longitude=-71.9673)
    repo.add_restaurant(2, "Pollería El Inka", menu=[
        MenuItem(id=20, restaurant_id=2, name="1/4 Pollo a la brasa", price=18.00, category="Pollos"),
    ])
    return repo


@pytest.fixture
def session_manager():
    return ThreadSafeSessionManager(session_timeout=1800, lock_timeout=1.0)


@pytest.fixture
def cost_calculator():
    return FakeCostCalculator(DeliveryEstimate(fee=7.50, distance_km=2.4, eta_minutes=35))


@pytest.fixture
def make_handler(repository, session_manager, cost_calculator):
    """Factory so tests can toggle feature flags."""

    def _make(address_book_enabled=True, interactive_prompts_enabled=True, calculator=cost_calculator):
        return MessageHandler(
            repository,
            session_manager,
            estimator=DeliveryFeeEstimator(calculator),
            order_manager=OrderManager(repository),
            address_book_enabled=address_book_enabled,
            interactive_prompts_enabled=interactive_prompts_enabled,
            support_phone="+51 984 000 111"
        )

    return _make


@pytest.fixture
def handler(make_handler):
    return make_handler()


@pytest.fixture
def send(handler):
    """Send one message as the default customer and return the reply."""

    def _send(text, coordinates=None, phone=PHONE, name="Ana"):
        return handler.handle_inbound_message(phone, text, name, coordinates)

    return _send


@pytest.fixture
def db_manager(tmp_path):
    return DeliveryDatabaseManager(str(tmp_path / "test_delivery.db"))


@pytest.fixture
def empty_db_manager(tmp_path):
    return DeliveryDatabaseManager(str(tmp_path / "empty_delivery.db"), seed_demo_data=False)
