# delivery/estimator.py
import logging
from typing import Optional

from database.models import DeliveryEstimate
from utils.constants import DeliveryDefaults
from .costing import DeliveryCostCalculator

logger = logging.getLogger(__name__)


class DeliveryFeeEstimator:
    """Delivery estimates that always resolve, falling back to a fixed fee"""

    def __init__(self, calculator: Optional[DeliveryCostCalculator] = None):
        self.calculator = calculator

    @staticmethod
    def fallback() -> DeliveryEstimate:
        return DeliveryEstimate(
            fee=DeliveryDefaults.FALLBACK_FEE,
            distance_km=DeliveryDefaults.FALLBACK_DISTANCE_KM,
            eta_minutes=DeliveryDefaults.FALLBACK_ETA_MINUTES
        )

    def estimate(self, restaurant_id: int, latitude: Optional[float] = None,
                 longitude: Optional[float] = None) -> DeliveryEstimate:
        """Estimate delivery for a drop-off point; never raises"""
        if latitude is None or longitude is None or self.calculator is None:
            return self.fallback()

        try:
            result = self.calculator.calculate(restaurant_id, latitude, longitude)
        except Exception as e:
            logger.warning(f"⚠️ Delivery estimate failed for restaurant {restaurant_id}: {e}")
            return self.fallback()

        if not result:
            logger.warning(f"⚠️ Empty delivery estimate for restaurant {restaurant_id}, using default fee")
            return self.fallback()

        logger.info(f"🛵 Delivery estimate for restaurant {restaurant_id}: "
                    f"{result.fee} / {result.distance_km} km / {result.eta_minutes} min")
        return result
