# codguard/integrations/carrier.py
import time
from typing import Optional

import requests

from ..config import settings
from ..errors import IntegrationError
from ..utils.logging import logger

def register_tracking(tracking_number: str, carrier_code: Optional[int] = None) -> dict:
    """Register a parcel with the tracking API so TRACKING_UPDATED webhooks start arriving."""
    if not settings.TRACKING_API_KEY:
        raise IntegrationError("tracking API key not configured")

    url = f"{settings.TRACKING_API_URL.rstrip('/')}/register"
    item = {"number": tracking_number}
    if carrier_code is not None:
        item["carrier"] = int(carrier_code)

    logger.info("Registering tracking: %s (%s)", tracking_number, carrier_code)

    # simple retry for rate limit
    for attempt in range(3):
        try:
            r = requests.post(
                url,
                headers={"17token": settings.TRACKING_API_KEY.get_secret_value(),
                         "Content-Type": "application/json"},
                json=[item],
                timeout=8,
            )
        except requests.RequestException as e:
            raise IntegrationError(f"tracking API unreachable: {e}") from e
        if r.status_code == 429 and attempt < 2:
            time.sleep(1.5 * (attempt + 1))
            continue
        try:
            r.raise_for_status()
            data = r.json()
        except (requests.HTTPError, ValueError) as e:
            raise IntegrationError(f"tracking register failed ({r.status_code}): {(r.text or '')[:500]}") from e
        rejected = (data.get("data") or {}).get("rejected") or []
        if rejected:
            raise IntegrationError(f"tracking register rejected: {rejected}")
        return data
    raise IntegrationError("tracking API rate limited")
