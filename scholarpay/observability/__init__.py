# -*- coding: utf-8 -*-
from .prom import setup_observability

__all__ = ["setup_observability"]
