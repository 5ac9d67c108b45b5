"""
negocie-bridge - Orquestracao de negociacao de dividas (chat <-> API Negocie).
"""

__version__ = "1.0.0"
