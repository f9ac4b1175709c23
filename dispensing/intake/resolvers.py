"""
Registered identifier kinds:
  cedula: CedulaResolver   (national card number, digits only)
  qr:     QRCodeResolver   (opaque scan code)
"""

import re

from ..domain import AuthMethod
from ..exceptions import ValidationError
from .base import BaseIdentityResolver

CEDULA_RE = re.compile(r"^\d{6,10}$")
QR_MAX_LENGTH = 64


class CedulaResolver(BaseIdentityResolver):
    kind = AuthMethod.CEDULA

    def normalize(self, raw):
        # OCR output keeps the printed separators: "1.023.456.789"
        return re.sub(r"[\s.\-]", "", raw)

    def validate(self, identifier):
        if not CEDULA_RE.match(identifier):
            raise ValidationError(
                message='Cedula must be 6 to 10 digits',
                code='INVALID_CEDULA',
                detail={'field': 'identifier', 'value': identifier},
            )


class QRCodeResolver(BaseIdentityResolver):
    kind = AuthMethod.QR

    def normalize(self, raw):
        return raw.strip()

    def validate(self, identifier):
        if len(identifier) > QR_MAX_LENGTH:
            raise ValidationError(
                message=f"QR code longer than {QR_MAX_LENGTH} characters",
                code='INVALID_QR_CODE',
                detail={'field': 'identifier', 'length': len(identifier)},
            )
