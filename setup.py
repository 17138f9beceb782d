"""
CHIP-8 Emulator Setup
"""

from setuptools import setup, find_packages

setup(
    name='chip8-emulator',
    version='0.1.0',
    description='CHIP-8 Virtual Machine with a terminal UI',
    long_description=open('README.md', encoding='utf-8').read(),
    long_description_content_type='text/markdown',
    author='CHIP-8 Emulator Team',
    python_requires='>=3.8',
    packages=find_packages(exclude=['tests', 'tests.*', 'examples', 'examples.*']),
    install_requires=[
        'rich>=12.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'chip8-emulator=chip8_emulator.__main__:main',
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Intended Audience :: Education',
        'Topic :: Games/Entertainment',
        'Topic :: System :: Emulators',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
    ],
)
