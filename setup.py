# -*- coding: utf-8 -*-

from setuptools import setup


description = '''
    txkeyauth is a twisted API for authenticating clients by their
    P-256 public key with a challenge-response handshake
'''

setup(
    name='txkeyauth',
    version='0.0.1',
    description=description,
    long_description=open('README.rst', 'r').read(),
    keywords=['python', 'twisted', 'cryptography', 'authentication', 'protocol'],
    install_requires=open('requirements.txt').readlines(),
    # "pip install -e .[dev]" will install development requirements
    extras_require=dict(
        dev=open('requirements-dev.txt').readlines(),
    ),
    entry_points={
        'console_scripts': [
            'txkeyauth = txkeyauth.cli:main',
        ],
    },
    classifiers=[
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Topic :: Security :: Cryptography',
        'Topic :: System :: Networking',
        'Programming Language :: Python :: 3',
    ],
    license="MIT",
    packages=["txkeyauth"],
)
