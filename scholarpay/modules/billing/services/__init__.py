# -*- coding: utf-8 -*-
"""
scholarpay/modules/billing/services/__init__.py

Servicios de billing:
- fee_calculator: bruto a partir de neto por riel (puro)
- discount_resolver: cupón vs. descuento de referido
- checkout_service: construcción y envío del checkout
- settlement_service: verificación y liquidación idempotente
- notification_service: fan-out de notificaciones de pago

Importar desde los submódulos para evitar ciclos con repositories.
"""
