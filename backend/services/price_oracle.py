"""Price oracle boundary with cached last-known-price fallback.

The ledger only ever calls :meth:`PriceOracle.get_price`. Primary sources are
plain callables returning a :class:`PriceQuote`; when the primary fails, a
cached quote is served if it is still inside the staleness window, otherwise
the lookup fails fast. Nothing here retries or blocks.
"""

from dataclasses import dataclass
import logging
import time
from typing import Callable, Dict, Optional

from common.protocol_constants import PERCENTAGE_FACTOR
from models.exceptions import InvalidAmount, PriceStale, PriceUnavailable


logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    """Return current UTC epoch seconds."""
    return int(time.time())


@dataclass(frozen=True)
class PriceQuote:
    """WAD-scaled USD price per whole token and the time it was observed."""

    price: int
    timestamp: int


PriceSource = Callable[[str], PriceQuote]


class ManualPriceFeed:
    """Admin-maintained prices; the default primary source."""

    def __init__(self, clock: Clock = system_clock) -> None:
        self._clock = clock
        self._quotes: Dict[str, PriceQuote] = {}

    def set_price(self, asset: str, price: int, timestamp: Optional[int] = None) -> PriceQuote:
        """Publish a price for ``asset``."""
        if price <= 0:
            raise InvalidAmount("price must be > 0")
        quote = PriceQuote(price=int(price), timestamp=self._clock() if timestamp is None else int(timestamp))
        self._quotes[asset] = quote
        logger.info("Price updated asset=%s price=%s timestamp=%s", asset, quote.price, quote.timestamp)
        return quote

    def clear(self, asset: str) -> None:
        """Drop the quote so the next read fails."""
        self._quotes.pop(asset, None)

    def __call__(self, asset: str) -> PriceQuote:
        quote = self._quotes.get(asset)
        if quote is None:
            raise PriceUnavailable("no price published for asset={0}".format(asset))
        return quote


class PriceOracle:
    """Resolve asset prices from primary sources with a bounded cache fallback."""

    def __init__(
        self,
        default_source: Optional[PriceSource] = None,
        clock: Clock = system_clock,
        staleness_window_sec: int = 3600,
        heartbeat_sec: int = 3600,
        deviation_threshold_bps: int = 1000,
    ) -> None:
        self._default_source = default_source
        self._sources: Dict[str, PriceSource] = {}
        self._cache: Dict[str, PriceQuote] = {}
        self._clock = clock
        self.staleness_window_sec = staleness_window_sec
        self.heartbeat_sec = heartbeat_sec
        self.deviation_threshold_bps = deviation_threshold_bps

    def set_source(self, asset: str, source: PriceSource) -> None:
        """Route ``asset`` to a dedicated primary source."""
        self._sources[asset] = source

    def cached_quote(self, asset: str) -> Optional[PriceQuote]:
        """Return the last accepted quote, if any."""
        return self._cache.get(asset)

    def get_price(self, asset: str) -> int:
        """Return the WAD price for ``asset``.

        Raises:
            PriceStale: Primary quote is older than the heartbeat and no fresh
                cached quote exists.
            PriceUnavailable: Primary failed and no cached quote is usable.
        """
        now = self._clock()
        try:
            quote = self._fetch_primary(asset, now)
        except Exception as exc:
            cached = self._cache.get(asset)
            if cached is not None and now - cached.timestamp <= self.staleness_window_sec:
                logger.warning(
                    "Primary price failed for asset=%s (%s). Serving cached price=%s age=%ss",
                    asset,
                    exc,
                    cached.price,
                    now - cached.timestamp,
                )
                return cached.price
            if isinstance(exc, PriceStale):
                raise
            logger.warning("No usable price for asset=%s: %s", asset, exc)
            raise PriceUnavailable("price unavailable for asset={0}".format(asset)) from exc

        self._check_deviation(asset, quote)
        self._cache[asset] = quote
        return quote.price

    def _fetch_primary(self, asset: str, now: int) -> PriceQuote:
        source = self._sources.get(asset, self._default_source)
        if source is None:
            raise PriceUnavailable("no price source configured for asset={0}".format(asset))
        quote = source(asset)
        if quote.price <= 0:
            raise PriceUnavailable("non-positive price for asset={0}".format(asset))
        if now - quote.timestamp > self.heartbeat_sec:
            raise PriceStale(
                "price for asset={0} is {1}s old (heartbeat {2}s)".format(
                    asset, now - quote.timestamp, self.heartbeat_sec
                )
            )
        return quote

    def _check_deviation(self, asset: str, quote: PriceQuote) -> None:
        previous = self._cache.get(asset)
        if previous is None or self.deviation_threshold_bps <= 0:
            return
        delta = abs(quote.price - previous.price)
        if delta * PERCENTAGE_FACTOR > previous.price * self.deviation_threshold_bps:
            logger.warning(
                "Price deviation above threshold asset=%s previous=%s current=%s threshold_bps=%s",
                asset,
                previous.price,
                quote.price,
                self.deviation_threshold_bps,
            )
