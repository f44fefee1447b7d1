from setuptools import setup, find_packages

setup(
    name="quickdub",
    version="0.1.0",
    description="Upload-and-dub video service: extract, transcribe, translate, synthesize, remux",
    author="QuickDub Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml>=6.0",
        "click>=8.0",
        "rich>=13.0",
        "flask>=2.3",
        "requests>=2.31",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "quickdub=quickdub.cli:main",
        ],
    },
)
