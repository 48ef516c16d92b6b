from unittest.mock import MagicMock

import pytest
import requests

from database.models import DeliveryEstimate
from delivery.costing import (
    DeliveryCostError, DistanceDeliveryCostCalculator, HttpDeliveryCostClient, haversine_km
)
from delivery.estimator import DeliveryFeeEstimator
from tests.fakes import FakeCostCalculator, FakeRepository


def _response(status_code=200, payload=None, json_error=False):
    response = MagicMock()
    response.status_code = status_code
    response.text = str(payload)
    if json_error:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = payload
    return response


def test_estimator_without_coordinates_uses_fallback():
    calculator = FakeCostCalculator(DeliveryEstimate(fee=9.0, distance_km=3.0, eta_minutes=40))

    estimate = DeliveryFeeEstimator(calculator).estimate(1)

    assert estimate == DeliveryEstimate(fee=5.00, distance_km=0, eta_minutes=30)
    assert calculator.calls == []


def test_estimator_returns_calculator_result():
    expected = DeliveryEstimate(fee=9.0, distance_km=3.0, eta_minutes=40)

    estimate = DeliveryFeeEstimator(FakeCostCalculator(expected)).estimate(1, -13.5, -71.9)

    assert estimate == expected


@pytest.mark.parametrize("calculator", [
    FakeCostCalculator(error=DeliveryCostError("timeout")),
    FakeCostCalculator(error=RuntimeError("unexpected")),
    FakeCostCalculator(estimate=None),
    None,
])
def test_estimator_never_raises(calculator):
    estimate = DeliveryFeeEstimator(calculator).estimate(1, -13.5, -71.9)

    assert (estimate.fee, estimate.distance_km, estimate.eta_minutes) == (5.00, 0, 30)


def test_haversine_known_distance():
    # Plaza de Armas to Wanchaq, Cusco: roughly 2 km
    assert haversine_km(-13.5167, -71.9787, -13.5269, -71.9640) == pytest.approx(1.94, abs=0.1)
    assert haversine_km(-13.5, -71.9, -13.5, -71.9) == 0


def test_distance_calculator_tariff():
    repo = FakeRepository()
    repo.add_restaurant(1, "Pizzería", latitude=-13.5167, longitude=-71.9787)
    calculator = DistanceDeliveryCostCalculator(repo, base_fee=3.0, fee_per_km=1.0,
                                                average_speed_kmh=20, preparation_minutes=15)

    estimate = calculator.calculate(1, -13.5269, -71.9640)

    assert estimate.distance_km == 2.0
    assert estimate.fee == pytest.approx(3.0 + 1.94, abs=0.1)
    assert estimate.eta_minutes == 15 + 6


def test_distance_calculator_without_restaurant_coordinates():
    repo = FakeRepository()
    repo.add_restaurant(1, "Sin mapa")

    assert DistanceDeliveryCostCalculator(repo).calculate(1, -13.5, -71.9) is None
    assert DistanceDeliveryCostCalculator(repo).calculate(99, -13.5, -71.9) is None


def test_http_client_posts_coordinates():
    client = HttpDeliveryCostClient("https://pricing.example/api/delivery", api_key="secret")
    client.session = MagicMock()
    client.session.post.return_value = _response(payload={"fee": 6.5, "distance_km": 2.1, "eta_minutes": 28})

    estimate = client.calculate(1, -13.53, -71.96)

    assert estimate == DeliveryEstimate(fee=6.5, distance_km=2.1, eta_minutes=28)
    args, kwargs = client.session.post.call_args
    assert args[0] == "https://pricing.example/api/delivery"
    assert kwargs['json'] == {'restaurant_id': 1, 'lat': -13.53, 'lng': -71.96}
    assert kwargs['headers']['Authorization'] == "Bearer secret"


def test_http_client_accepts_spanish_keys_in_list():
    client = HttpDeliveryCostClient("https://pricing.example/api/delivery")
    client.session = MagicMock()
    client.session.post.return_value = _response(
        payload=[{"costo": "7.00", "distancia_km": "3.2", "tiempo_estimado": "40"}]
    )

    assert client.calculate(1, -13.53, -71.96) == DeliveryEstimate(fee=7.0, distance_km=3.2, eta_minutes=40)


def test_http_client_empty_payload_returns_none():
    client = HttpDeliveryCostClient("https://pricing.example/api/delivery")
    client.session = MagicMock()
    client.session.post.return_value = _response(payload=[])

    assert client.calculate(1, -13.53, -71.96) is None


@pytest.mark.parametrize("response, error", [
    (_response(status_code=500, payload="error"), None),
    (_response(json_error=True), None),
    (_response(payload={"fee": "gratis", "eta_minutes": 30}), None),
    (None, requests.exceptions.Timeout("slow")),
    (None, requests.exceptions.ConnectionError("down")),
])
def test_http_client_failures_raise_cost_error(response, error):
    client = HttpDeliveryCostClient("https://pricing.example/api/delivery")
    client.session = MagicMock()
    if error:
        client.session.post.side_effect = error
    else:
        client.session.post.return_value = response

    with pytest.raises(DeliveryCostError):
        client.calculate(1, -13.53, -71.96)
