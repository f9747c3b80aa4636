#!/usr/bin/env python3

from setuptools import find_packages, setup


def get_version():
    with open("debian/changelog", "r", encoding="utf-8") as f:
        return f.readline().split()[1][1:-1]


setup(
    name="iot-unified-bridge",
    version=get_version(),
    description="Unified MQTT bridge for V5008 and V6800 rack monitoring gateways",
    license="MIT",
    maintainer="IoT Platform Team",
    maintainer_email="iot-platform@example.com",
    packages=find_packages(include=["iot_bridge", "iot_bridge.*"]),
    python_requires=">=3.8",
    install_requires=[
        "paho-mqtt>=2.0",
        "fastapi",
        "uvicorn",
        "SQLAlchemy>=1.4",
    ],
    extras_require={
        "test": ["pytest", "httpx"],
    },
    entry_points={
        "console_scripts": [
            "iot-bridge=iot_bridge.cli.main:main",
        ],
    },
)
