"""Recommendation settings endpoints for the InvRec API."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from invrec.api.exceptions import InvalidSettingsError
from invrec.api.state import get_settings_store
from invrec.recommender.settings import SettingsStore

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/settings",
    tags=["settings"],
)


@router.get("/inventory-recommendations")
def get_recommendation_settings(
    store: SettingsStore = Depends(get_settings_store),
) -> Dict[str, Any]:
    """Current scoring configuration, defaults merged with stored values."""
    return store.get_configuration()


@router.post("/inventory-recommendations")
def save_recommendation_settings(
    payload: Any = Body(...),
    store: SettingsStore = Depends(get_settings_store),
) -> Dict[str, Any]:
    """Save a (partial) scoring configuration.

    Returns:
        The normalized configuration as persisted.

    Raises:
        InvalidSettingsError: If the payload is not a JSON object.
    """
    try:
        return store.save_configuration(payload)
    except TypeError as e:
        logger.warning(f"Rejected recommendation settings: {e}")
        raise InvalidSettingsError(str(e)) from e
