"""
Numerical integration rules.
"""

from .gauss import gauss_legendre_1d, gauss_legendre_2d
