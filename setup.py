"""
Setup configuration for the multipath fading channel simulator.
"""

from setuptools import setup, find_packages

setup(
    name="fading-channel-sim",
    version="1.0.0",
    description="Reproducible multipath fading channel simulator for ATSC 3.0 and 3GPP channel models",
    author="Team NoWiresAttached",
    packages=find_packages(exclude=["*.tests", "*.tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.22",
        "scipy>=1.8",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "fading-channel=fading.channel_simulator:main",
        ],
    },
)
