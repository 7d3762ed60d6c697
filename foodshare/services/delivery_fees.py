"""Delivery fee table for volunteer deliveries (LKR)."""

from typing import Optional
from foodshare.utils.config import Settings

DISTRICT_FEES = {
    "Colombo": 200,
    "Gampaha": 250,
    "Kalutara": 300,
    "Kegalle": 300,
    "Galle": 350,
    "Kurunegala": 350,
    "Ratnapura": 350,
    "Nuwara Eliya": 350,
    "Matale": 350,
    "Kandy": 400,
    "Matara": 400,
    "Polonnaruwa": 400,
    "Puttalam": 400,
    "Badulla": 400,
    "Batticaloa": 400,
    "Ampara": 400,
    "Hambantota": 450,
    "Anuradhapura": 450,
    "Monaragala": 450,
    "Trincomalee": 450,
    "Vavuniya": 450,
    "Jaffna": 500,
    "Mannar": 500,
    "Kilinochchi": 500,
    "Mullaitivu": 500,
}

_FEES_BY_KEY = {name.lower(): fee for name, fee in DISTRICT_FEES.items()}


def calculate_delivery_fee(district: Optional[str], urgent: bool = False) -> int:
    """
    Fee for delivering to `district`.

    District names match case-insensitively; unknown districts pay the
    default fee.
    """
    key = (district or "").strip().lower()
    fee = _FEES_BY_KEY.get(key, Settings.DELIVERY_DEFAULT_FEE)
    if urgent:
        fee += Settings.DELIVERY_URGENT_SURCHARGE
    return fee
