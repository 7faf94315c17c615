"""HTTP client for the European Citizens' Initiative public API."""

import asyncio
import logging
from typing import Optional

import httpx

from ..errors import UpstreamDataInvalid, UpstreamUnavailable

logger = logging.getLogger(__name__)


class ECIClient:
    """Client for the initiative's progression and description endpoints."""

    def __init__(
        self,
        counter_url: str,
        description_url: str,
        counter_timeout: float = 10.0,
        description_timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize ECI client.

        Args:
            counter_url: Progression endpoint (signature count and goal)
            description_url: Initiative description endpoint (closing date)
            counter_timeout: Seconds before the counter request is abandoned
            description_timeout: Seconds before the description request is abandoned
            transport: Optional httpx transport (tests inject a mock here)
        """
        self.counter_url = counter_url
        self.description_url = description_url
        self.counter_timeout = counter_timeout
        self.description_timeout = description_timeout
        self._client = httpx.AsyncClient(
            transport=transport, headers={"Accept": "application/json"}
        )

    async def close(self):
        """Close the underlying connection pool."""
        await self._client.aclose()

    async def _get_json(self, url: str, timeout: float) -> dict:
        """
        GET a JSON document.

        Raises:
            UpstreamUnavailable: timeout, transport error or non-2xx status
            UpstreamDataInvalid: body is not a JSON object
        """
        logger.debug(f"GET {url} (timeout={timeout}s)")
        # httpx applies `timeout` per connect/read/write step; wait_for caps the whole call
        try:
            response = await asyncio.wait_for(self._client.get(url, timeout=timeout), timeout)
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise UpstreamUnavailable(f"Timed out after {timeout}s: {url}") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Request to {url} failed: {e}") from e

        if not response.is_success:
            raise UpstreamUnavailable(f"{url} returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamDataInvalid(f"{url} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise UpstreamDataInvalid(f"{url} returned {type(data).__name__}, not an object")

        return data

    async def get_progression(self) -> dict:
        """
        Get the current signature count.

        Returns:
            Dictionary with keys including signatureCount and goal
        """
        return await self._get_json(self.counter_url, self.counter_timeout)

    async def get_description(self) -> dict:
        """
        Get the initiative description.

        Returns:
            Dictionary with initiativeInfo.closingDate in DD/MM/YYYY form
        """
        return await self._get_json(self.description_url, self.description_timeout)


async def test_connection():
    """Test both ECI endpoints."""
    from dotenv import load_dotenv

    from ..config import Settings

    load_dotenv()
    settings = Settings()

    client = ECIClient(
        settings.counter_url,
        settings.description_url,
        settings.counter_timeout,
        settings.description_timeout,
    )

    try:
        progression = await client.get_progression()
        print(f"\nSignatures: {progression.get('signatureCount')} / {progression.get('goal')}")

        description = await client.get_description()
        closing_date = description.get("initiativeInfo", {}).get("closingDate")
        print(f"Closing date: {closing_date}")

    finally:
        await client.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(test_connection())
