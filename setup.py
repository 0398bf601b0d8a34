"""Setup configuration for qd."""

from setuptools import setup, find_packages

setup(
    name="qd",
    version="1.0.0",
    description="Durable filesystem-backed job spooler",
    packages=find_packages(include=["qd", "qd.*"]),
    install_requires=[
        "click>=8.1.7",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "base58>=2.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "qd=qd.cli:cli",
        ],
    },
    python_requires=">=3.8",
)
