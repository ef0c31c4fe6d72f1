"""StockSync setup - Offline-first inventory sync."""
from setuptools import setup, find_packages

setup(
    name="stocksync",
    version="1.0.0",
    description="StockSync: offline-first inventory sync core",
    packages=find_packages(include=["stocksync", "stocksync.*"]),
    python_requires=">=3.10",
    install_requires=[
        "click>=8.0",
        "blake3>=0.3",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "stock=stocksync.cli.main:cli",
        ],
    },
)
