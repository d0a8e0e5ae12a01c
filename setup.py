"""Setup file for rsynth package."""

from setuptools import setup

setup(
    name="rsynth",
    version="0.1.0",
    description="Topic research pipeline: query planning, web search, semantic filtering and report synthesis",
    author="Your Name",
    packages=["rsynth", "rsynth.stages"],
    python_requires=">=3.9",
    install_requires=[
        "openai",
        "requests",
        "numpy",
        "pydantic>=2",
        "python-dotenv",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "rsynth=rsynth.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
