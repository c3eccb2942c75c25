"""Port definition for the OAuth identity exchange."""

from typing import Protocol

from domain.model.oauth import ExchangeResult, ProviderDescriptor


class OAuthClientPort(Protocol):
    async def exchange(
        self,
        descriptor: ProviderDescriptor,
        client_id: str,
        client_secret: str,
        code: str,
        code_verifier: str,
        redirect_uri: str,
    ) -> ExchangeResult:
        """Trade an authorization code for tokens and a verified identity.

        Raises OAuthExchangeError on any provider or transport failure.
        """
        ...
