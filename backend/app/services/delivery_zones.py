"""
DELIVERY ZONE RESOLVER

Purpose: map free-text city input to a deliverability verdict and fee.

Architecture:
1. Normalize city input (lowercase, strip accents, collapse whitespace)
2. Match against each active zone's accepted spellings
3. Free delivery when the zone costs 0 or the order reaches the zone threshold
4. Unknown city -> polite decline, never an exception

Zones are cached in memory for DELIVERY_ZONE_CACHE_SECONDS. The refresh is
lazy (first call after expiry). If the store is unreachable the built-in
DEFAULT_ZONES are used, so checkout keeps working through a store outage.
Cache writes are last-writer-wins.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from app.payments.currency import format_fcfa
from app.schemas.delivery import CityValidation
from app.services.record_store import RecordStore
from app.services.text_utils import normalize_text

logger = logging.getLogger(__name__)


@dataclass
class Zone:
    id: str
    name: str
    cities: List[str]
    cost: float
    free_delivery_threshold: Optional[float] = None
    is_active: bool = True
    _normalized: set = field(default_factory=set, repr=False)

    def __post_init__(self):
        self._normalized = {normalize_text(city) for city in self.cities}

    def match(self, normalized_city: str) -> Optional[str]:
        """Return the zone's own spelling of the city, or None."""
        if normalized_city not in self._normalized:
            return None
        for city in self.cities:
            if normalize_text(city) == normalized_city:
                return city
        return None

    def delivery_cost_for(self, order_amount: float) -> float:
        if self.cost <= 0:
            return 0.0
        if self.free_delivery_threshold is not None and order_amount >= self.free_delivery_threshold:
            return 0.0
        return float(self.cost)

    @classmethod
    def from_row(cls, row: dict) -> "Zone":
        threshold = row.get("free_delivery_threshold")
        return cls(
            id=str(row["id"]),
            name=row["name"],
            cities=list(row.get("cities") or []),
            cost=float(row.get("cost") or 0),
            free_delivery_threshold=float(threshold) if threshold is not None else None,
            is_active=bool(row.get("is_active", True)),
        )


DEFAULT_ZONES: List[Zone] = [
    Zone(id="dakar-free", name="Dakar", cities=["Dakar"], cost=0),
    Zone(
        id="senegal-paid",
        name="Sénégal (hors Dakar)",
        cities=[
            "Thiès", "Kaolack", "Saint-Louis", "Ziguinchor", "Diourbel", "Louga",
            "Fatick", "Kolda", "Matam", "Kaffrine", "Sédhiou", "Kédougou",
            "Tambacounda", "Rufisque", "Mbour", "Joal", "Saly", "Somone",
            "Tivaouane", "Mékhé", "Khombole",
        ],
        cost=2500,
        free_delivery_threshold=50000,
    ),
]


def default_zone_rows() -> List[dict]:
    """DEFAULT_ZONES as delivery_zones rows (used to seed an empty database)."""
    return [
        {
            "id": zone.id,
            "name": zone.name,
            "cities": list(zone.cities),
            "cost": zone.cost,
            "free_delivery_threshold": zone.free_delivery_threshold,
            "is_active": True,
        }
        for zone in DEFAULT_ZONES
    ]


class DeliveryZoneResolver:
    """Cached city -> delivery fee resolution."""

    def __init__(
        self,
        store: RecordStore,
        cache_seconds: int = 600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.cache_seconds = cache_seconds
        self.clock = clock
        self._zones: Optional[List[Zone]] = None
        self._loaded_at: float = 0.0

    async def validate_city(self, city_name: str, order_amount: float = 0.0) -> CityValidation:
        """
        Returns:
            CityValidation(is_deliverable, delivery_cost, is_free_delivery, message, zone_name, city)

        Never raises: unknown cities are declined, store failures fall back
        to the default zones.
        """
        normalized = normalize_text(city_name)
        if not normalized:
            return CityValidation(
                is_deliverable=False,
                message="Merci d'indiquer votre ville de livraison 🏙️",
            )

        zones = await self._ensure_cache()
        for zone in zones:
            matched_city = zone.match(normalized)
            if matched_city is None:
                continue

            cost = zone.delivery_cost_for(order_amount)
            is_free = cost == 0
            if is_free and zone.cost > 0:
                message = (
                    f"🎉 Bonne nouvelle ! La livraison est offerte à {matched_city} "
                    f"dès {format_fcfa(zone.free_delivery_threshold)} d'achat"
                )
            elif is_free:
                message = f"🛵 La livraison est gratuite à {matched_city}"
            else:
                message = f"📦 La livraison à {matched_city} est à {format_fcfa(cost)}"

            logger.info(
                f"[DeliveryZones] '{city_name}' -> zone={zone.id} cost={cost} "
                f"(order_amount={order_amount})"
            )
            return CityValidation(
                is_deliverable=True,
                delivery_cost=cost,
                is_free_delivery=is_free,
                message=message,
                zone_name=zone.name,
                city=matched_city,
            )

        display = " ".join((city_name or "").split())
        logger.info(f"[DeliveryZones] '{city_name}' is not in any active zone")
        return CityValidation(
            is_deliverable=False,
            message=(
                f"Je suis navrée 😔 Nous ne livrons malheureusement pas encore à {display}. "
                f"Vous pouvez choisir une autre ville ou être prévenu(e) dès que "
                f"la livraison y sera disponible."
            ),
        )

    async def get_deliverable_cities(self) -> List[str]:
        zones = await self._ensure_cache()
        cities = {city for zone in zones for city in zone.cities}
        return sorted(cities, key=normalize_text)

    async def is_free_delivery_city(self, city_name: str) -> bool:
        """True only for zones that are free regardless of the order amount."""
        normalized = normalize_text(city_name)
        for zone in await self._ensure_cache():
            if zone.match(normalized) is not None:
                return zone.cost <= 0
        return False

    def clear_cache(self) -> None:
        self._zones = None
        self._loaded_at = 0.0

    async def _ensure_cache(self) -> List[Zone]:
        now = self.clock()
        if self._zones is not None and now - self._loaded_at < self.cache_seconds:
            return self._zones

        try:
            rows = await self.store.select("delivery_zones", {"is_active": True})
            zones = [Zone.from_row(row) for row in rows]
            if not zones:
                logger.warning("[DeliveryZones] No active zones configured, using defaults")
                zones = list(DEFAULT_ZONES)
        except Exception as e:
            # Not cached: the next call retries the store
            logger.error(f"[DeliveryZones] Zone refresh failed, using defaults: {e}")
            return self._zones or list(DEFAULT_ZONES)

        self._zones = zones
        self._loaded_at = now
        return zones
