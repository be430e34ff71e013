# -*- coding: utf-8 -*-
"""
scholarpay/modules/auth

Autenticación consumida (validación de JWT). No emite tokens.
"""

from .dependencies import get_current_user_id, validate_jwt_token

__all__ = ["get_current_user_id", "validate_jwt_token"]
