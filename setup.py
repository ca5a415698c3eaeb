"""
Package configuration for npdemand-montecarlo.

Installs the config, data, model and utils packages together with the
``main`` and ``analysis`` modules, and exposes the ``npdemand-mc`` command.
"""
from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# One requirement per line; blank lines are skipped
with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip()]

setup(
    name="npdemand-montecarlo",
    version="0.1.0",
    description="Monte Carlo study of constrained nonparametric demand estimation",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["config", "data", "model", "utils"]),
    py_modules=["main", "analysis"],
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
        "Topic :: Scientific/Engineering :: Mathematics",
    ],
    python_requires=">=3.8",
    install_requires=requirements,
    extras_require={
        "tests": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "npdemand-mc=main:main",
        ],
    },
)
