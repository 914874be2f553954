"""
System components for geochemmath.
"""

from geochemmath.components.config import Config, ConfigManager
