#!/usr/bin/env python3
from setuptools import setup

setup(
    name="skyglide",
    version="0.1.0",
    description="Skygrid coalescent likelihoods for genealogies",
    packages=["skyglide"],
    python_requires=">=3.8",
    install_requires=[
        "attrs>=23.1",
        "numpy",
        "ruamel.yaml>=0.17",
    ],
    extras_require={
        "test": [
            "pytest",
            "hypothesis",
            "scipy",
        ],
    },
    entry_points={
        "console_scripts": ["skyglide=skyglide.__main__:cli"],
    },
)
