#!/usr/bin/env python3
"""
Setup configuration for medialib
Incremental music library sync and track resolution over local and WebDAV folders
"""

from setuptools import setup, find_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core requirements (always installed)
core_requirements = [
    "mutagen>=1.47.0",
    "click>=8.1.7",
    "pyyaml>=6.0.1",
    "requests>=2.31.0",
    "tqdm>=4.66.1",
    "colorama>=0.4.6",
    "python-dotenv>=1.0.0",
    "Pillow>=10.0.0",
    "zhconv>=1.4.3",
]

setup(
    name="medialib",
    version="0.1.0",
    author="medialib contributors",
    description="Incremental music library sync over local directories and WebDAV",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["medialib", "medialib.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio",
    ],
    python_requires=">=3.10",
    install_requires=core_requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.3",
        ],
    },
    entry_points={
        "console_scripts": [
            "medialib=medialib.cli:cli",
        ],
    },
    keywords="music library webdav sync playlist cli",
)
