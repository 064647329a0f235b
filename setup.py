"""
Setup script for Network Survey.

Usage:
    pip install -e .            # development install
    pip install -e ".[test]"    # with test dependencies

Installs the ``network-survey`` command.
"""
from setuptools import setup

setup(
    name='network-survey',
    version='1.0.0',
    description='Local network device discovery and health monitoring agent',
    python_requires='>=3.10',
    packages=[
        # Our packages
        'agent',
        'config',
        'discovery',
        'storage',
    ],
    py_modules=['survey_agent'],
    install_requires=[
        'psutil',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-cov',
        ],
    },
    entry_points={
        'console_scripts': [
            'network-survey=survey_agent:main',
        ],
    },
)
