# -*- coding: utf-8 -*-
"""FitAI generation job client."""
