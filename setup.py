"""
Setup script for the SPCA Tuning package
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / 'README.md'
if readme_file.exists():
    with open(readme_file, 'r', encoding='utf-8') as f:
        long_description = f.read()
else:
    long_description = 'SPCA Tuning - sparse PCA penalty selection by the Index of Sparseness'

# Read requirements
requirements_file = Path(__file__).parent / 'requirements.txt'
if requirements_file.exists():
    with open(requirements_file, 'r', encoding='utf-8') as f:
        requirements = [
            line.strip() for line in f
            if line.strip() and not line.strip().startswith('#')
        ]
else:
    requirements = [
        'numpy>=1.24.0', 'pandas>=2.0.0', 'scipy>=1.11.0',
        'scikit-learn>=1.3.0', 'joblib>=1.3.0',
    ]

setup(
    name='spca-tuning',
    version='1.0.0',
    description='Tune the sparse PCA penalty by maximizing the Index of Sparseness',
    long_description=long_description,
    long_description_content_type='text/markdown',
    packages=find_packages(include=['spca_tuning', 'spca_tuning.*']),
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Science/Research',
        'Topic :: Scientific/Engineering',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
    ],
    python_requires='>=3.9',
    install_requires=requirements,
    extras_require={
        'dev': [
            'pytest>=7.0.0',
            'pytest-cov>=4.0.0',
            'black>=23.0.0',
            'flake8>=6.0.0',
        ],
        'plot': [
            'matplotlib>=3.7.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'spca-tune=spca_tuning.cli:main',
        ],
    },
)
