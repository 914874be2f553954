"""
Setup script for geochemmath package.
"""

from setuptools import setup, find_packages

setup(
    name="geochemmath",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        # Core numerical dependencies
        "numpy>=1.20.0",
        "pandas>=1.3.0",
        "scipy>=1.7.0",

        # Utilities
        "pyyaml>=6.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=6.0.0",
            "scikit-learn>=1.0.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'geochemmath=geochemmath.__main__:main',
        ],
    },
    description="Correlation, PCA and clustering analysis for geochemical sample data",
    keywords="geochemistry, correlation, pca, clustering",
    python_requires=">=3.8",
)
