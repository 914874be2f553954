"""
Geochemmath package for geochemical data exploration.

Correlation, pairwise scan, PCA and clustering engines for
multivariate element and oxide concentration data.
"""

__version__ = '0.1.0'

from geochemmath.analysis import GeochemAnalysis
from geochemmath.components.config import Config, ConfigManager
from geochemmath.errors import InsufficientDataError, UnsupportedMethodError
