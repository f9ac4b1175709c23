"""
BaseIdentityResolver: turns the raw text a capture client extracted from an
image into a canonical identifier.

Each identifier kind only has to:
1. subclass BaseIdentityResolver
2. implement normalize() and validate()
3. register itself in factory.py's _build_registry()
"""

from abc import ABC, abstractmethod

from ..exceptions import ValidationError


class BaseIdentityResolver(ABC):

    # registry key, also the value of the request's `method` field
    kind: str = ""

    @abstractmethod
    def normalize(self, raw: str) -> str:
        """Raw text → canonical form. Must not raise."""

    @abstractmethod
    def validate(self, identifier: str) -> None:
        """Raise ValidationError if the canonical form is unusable."""

    def resolve(self, raw) -> str:
        """normalize → validate, returns the canonical identifier."""
        if raw is None or not str(raw).strip():
            raise ValidationError(
                message='Identifier not provided',
                code='MISSING_IDENTIFIER',
                detail={'field': 'identifier'},
            )
        identifier = self.normalize(str(raw))
        self.validate(identifier)
        return identifier
