"""
Setup script for rudiment-coach.

Rudiment Coach is a terminal practice companion for drum rudiments:

1. Today's Plan - Up to three drills chosen by due date and rating
2. Drill Runner - Timed sets with a metronome click
3. Progress Tracking - Rubric scoring, rolling ratings and daily streaks

The 'rudiment-coach' command is the primary entry point.
"""

from setuptools import find_packages, setup

setup(
    name="rudiment-coach",
    version="1.0.0",
    description="Drum rudiment practice scheduler with timed drills and streak tracking",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "rudiment-coach=rudiment_coach.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Artistic Software",
        "Topic :: Multimedia :: Sound/Audio",
    ],
    keywords="drums rudiments practice metronome spaced-repetition cli",
)
