from setuptools import find_packages, setup

setup(
    name='blebridge',
    version='1.0.0',
    description='BLE <-> MQTT bridge daemon for RV peripherals (OneControl, EasyTouch, GoPower)',
    author='isantolin',
    author_email='',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.11',
    install_requires=[
        'aiomqtt>=2.0',
        'paho-mqtt>=2.0',
        'bleak',
        'tenacity',
        'transitions',
        'msgspec',
        'construct',
        'marshmallow',
        'uvloop',
        'prometheus_client',
    ],
    extras_require={
        'tests': [
            'pytest',
            'pytest-asyncio',
            'hypothesis',
        ],
    },
    entry_points={
        'console_scripts': [
            'blebridge=blebridge.daemon:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
