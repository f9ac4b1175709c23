from ..exceptions import ValidationError
from .base import BaseIdentityResolver


def _build_registry() -> dict[str, type[BaseIdentityResolver]]:
    from .resolvers import CedulaResolver, QRCodeResolver

    return {
        "cedula": CedulaResolver,
        "qr":     QRCodeResolver,
    }


def get_resolver(kind: str) -> BaseIdentityResolver:
    """
    Raises:
        ValidationError: unknown identifier kind, or one that is not a string
    """
    registry = _build_registry()
    resolver_cls = registry.get(kind) if isinstance(kind, str) else None

    if resolver_cls is None:
        raise ValidationError(
            message=f"Invalid authentication method: {kind!r}",
            code='INVALID_METHOD',
            detail={'known_methods': list(registry.keys())},
        )

    return resolver_cls()
