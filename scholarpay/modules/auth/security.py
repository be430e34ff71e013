# -*- coding: utf-8 -*-
"""
scholarpay/modules/auth/security.py

Seguridad consumida por el motor de cobro:
- Esquema OAuth2 (Bearer)
- Decodificación / validación de JWT emitidos por el servicio de identidad

La emisión de tokens y el manejo de contraseñas viven fuera de este servicio.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from scholarpay.shared.config import get_settings

# Esquema OAuth2 para extraer el token de Authorization: Bearer <token>
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


class TokenDecodeError(Exception):
    """Error al decodificar/validar un token JWT."""


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decodifica y valida un JWT. Lanza TokenDecodeError si es inválido/expirado.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        raise TokenDecodeError("Token inválido o expirado") from e

    sub = payload.get("sub")
    if sub is None or not str(sub).strip():
        raise TokenDecodeError("Token sin 'sub'")
    return payload


__all__ = ["oauth2_scheme", "decode_access_token", "TokenDecodeError"]
# Fin del archivo scholarpay/modules/auth/security.py
