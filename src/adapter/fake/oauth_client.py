"""In-memory implementation of OAuthClientPort for testing."""

from domain.model.errors import OAuthExchangeError
from domain.model.oauth import ExchangeResult, ExternalIdentity, ProviderDescriptor, ProviderTokens


class FakeOAuthClient:
    def __init__(self):
        self.calls: list[dict] = []
        self.results: dict[str, ExchangeResult] = {}
        self.error: str | None = None

    def set_identity(self, identity: ExternalIdentity, refresh_token: str | None = 'provider-refresh') -> None:
        self.results[identity.provider] = ExchangeResult(
            identity=identity,
            tokens=ProviderTokens(
                access_token=f'{identity.provider}-access',
                refresh_token=refresh_token,
                expires_in=3600,
            ),
        )

    async def exchange(
        self,
        descriptor: ProviderDescriptor,
        client_id: str,
        client_secret: str,
        code: str,
        code_verifier: str,
        redirect_uri: str,
    ) -> ExchangeResult:
        self.calls.append({
            'provider': descriptor.name,
            'code': code,
            'code_verifier': code_verifier,
            'redirect_uri': redirect_uri,
        })
        if self.error:
            raise OAuthExchangeError(self.error)
        result = self.results.get(descriptor.name)
        if not result:
            raise OAuthExchangeError(f"no identity configured for {descriptor.name}")
        return result
