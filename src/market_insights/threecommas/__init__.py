"""Signed client for the 3commas trading-bot API."""

from market_insights.threecommas.client import ThreeCommasClient, encode_query
from market_insights.threecommas.credentials import CredentialPair, Credentials, sign

__all__ = [
    "ThreeCommasClient",
    "encode_query",
    "CredentialPair",
    "Credentials",
    "sign",
]
