"""
Setup script for the Environmental Edge Gateway
"""

from pathlib import Path
from setuptools import setup, find_packages

# Read requirements
requirements = []
req_file = Path(__file__).parent / "requirements.txt"
if req_file.exists():
    with open(req_file) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#'):
                requirements.append(line)

# Read README
readme_file = Path(__file__).parent / "README.md"
long_description = ""
if readme_file.exists():
    with open(readme_file) as f:
        long_description = f.read()

setup(
    name="edge-gateway",
    version="1.0.0",
    author="Edge Gateway",
    description="Store-and-forward edge gateway for environmental sensor readings",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["edge_gateway.tests", "edge_gateway.tests.*"]),
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        'test': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.23.0',
        ],
    },
    python_requires=">=3.10",
    entry_points={
        'console_scripts': [
            'edge-gateway=edge_gateway.main:main',
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Networking :: Monitoring",
    ],
)
