from pathlib import Path

from setuptools import setup

install_requires = [
    "trio>=0.22.0",
    "trio-websocket>=0.10.0",
    "asks>=3.0.0",
    "multidict>=6.0.0",
    "pytz>=2017.3",
]


setup(
    name='cirrus-chat',
    version='0.1.0',
    packages=['cirrus', 'cirrus.core', 'cirrus.core._ws_wrapper', 'cirrus.dataclasses'],
    url='https://github.com/cirrus-chat/cirrus',
    license='LGPLv3',
    author='cirrus contributors',
    description='A trio-based library for the Discord REST API and gateway',
    long_description=Path(__file__).with_name("README.rst").read_text(encoding="utf-8"),
    python_requires=">=3.8",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3 :: Only",
        "Framework :: Trio",
        "Development Status :: 4 - Beta"
    ],
    install_requires=install_requires,
    extras_require={
        "tests": [
            "pytest>=7.0",
            "pytest-trio>=0.8.0",
        ],
    },
)
