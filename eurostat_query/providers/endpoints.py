"""Known SDMX 2.1 dissemination endpoints of Eurostat and the Commission DGs."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from ..config import Settings, get_settings
from ..exceptions import ConfigurationError, InvalidInputError
from ..models import Endpoint

logger = logging.getLogger(__name__)


ENDPOINTS: Dict[str, Endpoint] = {
    "ESTAT": Endpoint(
        organization="EUROSTAT",
        description="EUROSTAT database",
        api_url="https://ec.europa.eu/eurostat/api/dissemination/sdmx/2.1/",
    ),
    "ECFIN": Endpoint(
        organization="DG ECFIN",
        description="Economic and Financial Affairs",
        api_url="https://webgate.ec.europa.eu/ecfin/redisstat/api/dissemination/sdmx/2.1/",
    ),
    "EMPL": Endpoint(
        organization="DG EMPL",
        description="Employment, Social Affairs and Inclusion",
        api_url="https://webgate.ec.europa.eu/empl/redisstat/api/dissemination/sdmx/2.1/",
    ),
    "GROW": Endpoint(
        organization="DG GROW",
        description="Internal Market, Industry, Entrepreneurship and SMEs",
        api_url="https://webgate.ec.europa.eu/grow/redisstat/api/dissemination/sdmx/2.1/",
    ),
    "TAXUD": Endpoint(
        organization="DG TAXUD",
        description="Taxation and Customs Union",
        api_url="https://webgate.ec.europa.eu/taxation_customs/redisstat/api/dissemination/sdmx/2.1/",
    ),
}


def get_endpoint(provider_id: str, settings: Optional[Settings] = None) -> Endpoint:
    """Resolve a provider identifier, applying EUROSTAT_ENDPOINT_OVERRIDES.

    Raises:
        InvalidInputError: If the identifier is empty or unknown
        ConfigurationError: If the override for it is not an http(s) URL
    """
    if not provider_id:
        raise InvalidInputError(
            "The 'provider' identifier cannot be empty.", field="provider_id"
        )
    endpoint = ENDPOINTS.get(provider_id)
    if endpoint is None:
        raise InvalidInputError(
            f"Unknown EUROSTAT Endpoint '{provider_id}'.", field="provider_id"
        )

    settings = settings or get_settings()
    overrides = settings.endpoint_overrides
    for key in overrides:
        if key not in ENDPOINTS:
            logger.warning(f"Ignoring endpoint override for unknown provider '{key}'")

    override_url = overrides.get(provider_id)
    if override_url:
        if not override_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"EUROSTAT_ENDPOINT_OVERRIDES: '{override_url}' for {provider_id} is not an http(s) URL",
                details={"provider": provider_id},
            )
        return endpoint.model_copy(update={"api_url": override_url})
    return endpoint


def list_endpoints() -> List[Tuple[str, str, str, str]]:
    """Rows of (provider_id, organization, description, api_url)."""
    return [
        (provider_id, ep.organization, ep.description, ep.api_url)
        for provider_id, ep in ENDPOINTS.items()
    ]
