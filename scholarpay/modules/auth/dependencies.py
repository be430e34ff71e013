# -*- coding: utf-8 -*-
"""
scholarpay/modules/auth/dependencies.py

Dependencias de autenticación JWT para FastAPI.

Autor: ScholarPay
Fecha: 2026-10-18
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, status

from .security import TokenDecodeError, decode_access_token, oauth2_scheme


def validate_jwt_token(token: str) -> str:
    """
    Valida un JWT y extrae el user_id (claim 'sub').

    Raises:
        HTTPException 401: Si el token es inválido o expirado.
    """
    try:
        payload = decode_access_token(token)
    except TokenDecodeError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "invalid_token",
                "message": str(e),
            },
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    return str(payload["sub"])


async def get_current_user_id(
    token: str = Depends(oauth2_scheme),
) -> str:
    """Dependencia para endpoints protegidos: devuelve el user_id del token."""
    return validate_jwt_token(token)


__all__ = ["validate_jwt_token", "get_current_user_id"]
# Fin del archivo scholarpay/modules/auth/dependencies.py
