"""Deployment of generated plans to the platform."""

from .auth import AccessToken, ClientCredentialsProvider, CredentialProvider, StaticTokenProvider, TokenCache
from .http import CallStats, DataverseHttp
from .orchestrator import DeploymentOrchestrator
from .retry import RetryPolicy, classify_response, is_duplicate, is_transient, parse_retry_after

__all__ = [
    "AccessToken",
    "CallStats",
    "ClientCredentialsProvider",
    "CredentialProvider",
    "DataverseHttp",
    "DeploymentOrchestrator",
    "RetryPolicy",
    "StaticTokenProvider",
    "TokenCache",
    "classify_response",
    "is_duplicate",
    "is_transient",
    "parse_retry_after",
]
