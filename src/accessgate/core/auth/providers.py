"""OAuth provider registry.

The registry is built once at startup and handed to the identity service.
It only carries provider configuration; the redirect and callback exchange
with the provider happen outside this package.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field

from accessgate.core.auth.types import AuthProvider
from accessgate.core.exceptions import ValidationFailure


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Client registration for one OAuth provider."""

    name: str
    client_id: str
    client_secret: str
    callback_url: str = ""
    scopes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_configured(self) -> bool:
        """Check if the provider has usable client credentials."""
        return bool(self.client_id and self.client_secret)


class OAuthProviderRegistry:
    """Maps provider tags to their configuration."""

    def __init__(self, providers: list[OAuthProviderConfig] | None = None) -> None:
        """Initialize the registry.

        Args:
            providers: Initial provider configurations.
        """
        self._providers: dict[str, OAuthProviderConfig] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: OAuthProviderConfig) -> None:
        """Add a provider.

        Raises:
            ValidationFailure: If the tag is reserved or already registered.
        """
        if provider.name == AuthProvider.LOCAL.value:
            raise ValidationFailure("'local' is not an OAuth provider")
        if provider.name in self._providers:
            raise ValidationFailure(f"OAuth provider already registered: {provider.name}")
        self._providers[provider.name] = provider

    def get(self, name: str) -> OAuthProviderConfig:
        """Look up a provider.

        Raises:
            ValidationFailure: If the provider is not registered.
        """
        provider = self._providers.get(name)
        if provider is None:
            raise ValidationFailure(f"Unknown OAuth provider: {name}")
        return provider

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __iter__(self) -> Iterator[OAuthProviderConfig]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)

    def names(self) -> list[str]:
        """Registered provider tags, sorted."""
        return sorted(self._providers)
