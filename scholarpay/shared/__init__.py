# -*- coding: utf-8 -*-
"""
scholarpay/shared/__init__.py

Infraestructura compartida: configuración, base de datos, HTTP y middleware.
"""
