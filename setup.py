from setuptools import setup, find_packages

setup(
    name="notes4me",
    version="0.1.0",
    description="Local meeting recorder: system audio capture, whisper.cpp transcription and Ollama notes",
    author="",
    python_requires=">=3.9",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "rich>=12.5.0",
        "pyyaml>=6.0.0",
        "pypubsub>=4.0.3",
        "aiohttp>=3.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "notes4me=notes4me.main:main",
        ],
    },
)
