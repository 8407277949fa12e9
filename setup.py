"""Setup configuration for dorametrics"""

from setuptools import setup, find_packages

setup(
    name="github-dora-metrics",
    version="0.1.0",
    description=(
        "CLI tool for GitHub delivery metrics: deployment frequency, lead time "
        "for changes, change failure rate and mean time to recovery."
    ),
    author="GitHub DORA Metrics Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "requests>=2.28.0",
        "PyJWT[crypto]>=2.8.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "github-dora-metrics=dorametrics.main:main",
        ],
    },
)
