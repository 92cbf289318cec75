"""Service-layer utilities."""

from .collection_log import CollectionLogError, CollectionLogStore
from .collector import (
    CollectionResult,
    CollectionState,
    WeatherCollectionService,
    collect_yesterday_weather,
)
from .interpolation import DawnDuskTemperatures, NearestHourInterpolator, TemperatureInterpolator
from .provider import ProviderError, VisualCrossingClient
from .quality import CompletenessScorer, QualityScorer
from .retry import RetryController, RetryExhaustedError
from .snapshots import SnapshotStore, SnapshotStoreError

__all__ = [
    "CollectionLogError",
    "CollectionLogStore",
    "CollectionResult",
    "CollectionState",
    "CompletenessScorer",
    "DawnDuskTemperatures",
    "NearestHourInterpolator",
    "ProviderError",
    "QualityScorer",
    "RetryController",
    "RetryExhaustedError",
    "SnapshotStore",
    "SnapshotStoreError",
    "TemperatureInterpolator",
    "VisualCrossingClient",
    "WeatherCollectionService",
    "collect_yesterday_weather",
]
