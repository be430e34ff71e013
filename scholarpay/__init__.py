# -*- coding: utf-8 -*-
"""
scholarpay

Backend de cobro de cuotas y liquidación idempotente del marketplace de becas.
"""

__version__ = "0.1.0"
