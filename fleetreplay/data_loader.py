"""
Trip data loading for the fleet replay service
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .models import TripMetadata

logger = logging.getLogger(__name__)

DEFAULT_TRIPS = [
    TripMetadata(id="trip_1", file="trip_1_cross_country.json", name="Cross-Country Long Haul"),
    TripMetadata(id="trip_2", file="trip_2_urban_dense.json", name="Urban Dense Delivery"),
    TripMetadata(id="trip_3", file="trip_3_mountain_cancelled.json", name="Mountain Route Cancelled"),
    TripMetadata(id="trip_4", file="trip_4_southern_technical.json", name="Southern Technical Issues"),
    TripMetadata(id="trip_5", file="trip_5_regional_logistics.json", name="Regional Logistics"),
]

class DataLoaderError(Exception):
    """Base error for trip data loading"""
    pass

class TripNotFoundError(DataLoaderError):
    """Trip id is not in the catalogue"""
    pass

class DataLoadError(DataLoaderError):
    """Trip file is missing, unreadable or malformed"""
    pass

class DataLoader:
    """Loads trip event files from a directory, caching each trip once loaded"""

    def __init__(self, data_dir: Union[str, Path], trips: Optional[Sequence[TripMetadata]] = None):
        self.data_dir = Path(data_dir)
        self.trip_metadata: List[TripMetadata] = list(trips if trips is not None else DEFAULT_TRIPS)
        self._cache: Dict[str, List[Dict[str, Any]]] = {}

    def _find_metadata(self, trip_id: str) -> TripMetadata:
        for metadata in self.trip_metadata:
            if metadata.id == trip_id:
                return metadata
        raise TripNotFoundError(f"Trip {trip_id} not found")

    def load_trip_data(self, trip_id: str) -> List[Dict[str, Any]]:
        """Load a trip's raw events, from cache when already loaded"""
        if trip_id in self._cache:
            return self._cache[trip_id]

        metadata = self._find_metadata(trip_id)
        path = self.data_dir / metadata.file

        try:
            with open(path, "r") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            logger.error(f"Trip file missing for {trip_id}: {path}")
            raise DataLoadError(f"Failed to load {metadata.file}: file not found") from e
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading trip {trip_id}: {str(e)}")
            raise DataLoadError(f"Failed to load {metadata.file}: {e}") from e

        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise DataLoadError(f"Failed to load {metadata.file}: expected a list of event objects")

        self._cache[trip_id] = data
        logger.info(f"Loaded {len(data)} events for {trip_id} from {metadata.file}")
        return data

    def load_all_trips(self) -> Dict[str, List[Dict[str, Any]]]:
        """Load every catalogued trip, keyed by trip id in catalogue order"""
        return {metadata.id: self.load_trip_data(metadata.id) for metadata in self.trip_metadata}

    def get_trip_metadata(self) -> List[TripMetadata]:
        return list(self.trip_metadata)

    def clear_cache(self):
        self._cache.clear()
