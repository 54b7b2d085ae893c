"""
Setup script for Worst Generation - terminal client for the encrypted relay chat.

This client provides:
- Login / first-time registration against the relay
- Per-message hybrid encryption (RSA-OAEP key wrap + AES-256-CBC)
- Fresh RSA-2048 identity every run
- Textual terminal UI
"""

from setuptools import setup, find_packages
import os

this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='worstgen-client',
    version='1.0.0',
    description='Terminal client for the Worst Generation encrypted relay chat',
    long_description=long_description,
    long_description_content_type='text/markdown',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: End Users/Desktop',
        'Topic :: Communications :: Chat',
        'Topic :: Security :: Cryptography',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Operating System :: OS Independent',
        'Environment :: Console',
    ],
    python_requires='>=3.9',
    install_requires=[
        'textual>=0.47.0',
        'cryptography>=42.0.4',
        'rich>=13.7.0',
        'python-socketio>=5.10.0',
        'aiohttp>=3.9.0',
        'tomli>=2.0.1; python_version < "3.11"',
    ],
    extras_require={
        'test': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.23.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'worstgen=worstgen.main:main',
        ],
    },
)
