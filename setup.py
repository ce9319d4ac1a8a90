# setup.py
from setuptools import setup

setup(
    name="GeoStrike",
    version="0.1.1",
    packages=["common", "engine", "game"],
    py_modules=["client"],
    install_requires=["websockets>=13"],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["geostrike-client = client:main"]},
)
