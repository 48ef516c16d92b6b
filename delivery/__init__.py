"""Delivery fee estimation module"""

from .costing import (
    DeliveryCostCalculator, DeliveryCostError, DistanceDeliveryCostCalculator,
    HttpDeliveryCostClient, haversine_km
)
from .estimator import DeliveryFeeEstimator

__all__ = [
    'DeliveryCostCalculator', 'DeliveryCostError', 'DistanceDeliveryCostCalculator',
    'HttpDeliveryCostClient', 'haversine_km', 'DeliveryFeeEstimator'
]
