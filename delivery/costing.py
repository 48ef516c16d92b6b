# delivery/costing.py
"""
Delivery costing capabilities: a remote pricing API and a local distance tariff
"""
import math
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from database.models import DeliveryEstimate

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


class DeliveryCostError(Exception):
    """Raised when a costing capability cannot produce an estimate"""


class DeliveryCostCalculator(ABC):
    """Computes fee, distance and ETA for a restaurant and a drop-off point."""

    @abstractmethod
    def calculate(self, restaurant_id: int, latitude: float, longitude: float) -> Optional[DeliveryEstimate]:
        raise NotImplementedError


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres"""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


class DistanceDeliveryCostCalculator(DeliveryCostCalculator):
    """Base fee plus a per-km fee over the straight-line distance"""

    def __init__(self, repository, base_fee: float = 3.00, fee_per_km: float = 1.00,
                 average_speed_kmh: float = 20.0, preparation_minutes: int = 15):
        self.repository = repository
        self.base_fee = base_fee
        self.fee_per_km = fee_per_km
        self.average_speed_kmh = average_speed_kmh
        self.preparation_minutes = preparation_minutes

    def calculate(self, restaurant_id: int, latitude: float, longitude: float) -> Optional[DeliveryEstimate]:
        restaurant = self.repository.get_restaurant(restaurant_id)
        if not restaurant or restaurant.latitude is None or restaurant.longitude is None:
            logger.warning(f"⚠️ No coordinates for restaurant {restaurant_id}")
            return None

        distance = haversine_km(restaurant.latitude, restaurant.longitude, latitude, longitude)
        fee = round(self.base_fee + self.fee_per_km * distance, 2)
        travel_minutes = math.ceil(distance / self.average_speed_kmh * 60)

        return DeliveryEstimate(
            fee=fee,
            distance_km=round(distance, 1),
            eta_minutes=self.preparation_minutes + travel_minutes
        )


class HttpDeliveryCostClient(DeliveryCostCalculator):
    """Client for a remote delivery pricing endpoint"""

    def __init__(self, api_url: str, api_key: Optional[str] = None, timeout: float = 10.0):
        self.api_url = api_url
        self.timeout = timeout

        self.headers = {'Content-Type': 'application/json'}
        if api_key:
            self.headers['Authorization'] = f'Bearer {api_key}'

        # Failures fall back to the default fee, so no transport retries
        self.session = requests.Session()
        adapter = HTTPAdapter(max_retries=0)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        logger.info(f"✅ Delivery cost client initialized for {api_url}")

    def calculate(self, restaurant_id: int, latitude: float, longitude: float) -> Optional[DeliveryEstimate]:
        payload = {
            'restaurant_id': restaurant_id,
            'lat': latitude,
            'lng': longitude
        }

        try:
            response = self.session.post(self.api_url, json=payload, headers=self.headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise DeliveryCostError(f"Pricing API timeout: {e}") from e
        except requests.exceptions.RequestException as e:
            raise DeliveryCostError(f"Pricing API request failed: {e}") from e

        if response.status_code != 200:
            raise DeliveryCostError(f"Pricing API returned {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise DeliveryCostError("Pricing API returned invalid JSON") from e

        # Some deployments wrap the result in a one-element list
        if isinstance(data, list):
            data = data[0] if data else None

        if not data:
            return None

        return self._parse_estimate(data)

    @staticmethod
    def _parse_estimate(data: Dict) -> DeliveryEstimate:
        try:
            fee = data.get('fee', data.get('costo'))
            distance = data.get('distance_km', data.get('distancia_km', 0))
            eta = data.get('eta_minutes', data.get('tiempo_estimado'))
            return DeliveryEstimate(
                fee=float(fee),
                distance_km=float(distance or 0),
                eta_minutes=int(eta)
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise DeliveryCostError(f"Unexpected pricing API payload: {data}") from e
