"""
This module configures the installation setup for the roimesh package.
"""
from setuptools import setup, find_packages

# Read the long description from the README.rst
with open('README.rst', 'r', encoding="utf-8") as f:
    long_description = f.read()

setup(
    name='roimesh',
    version='0.1.0',
    description='Map regions of interest onto cortical surface meshes',
    long_description=long_description,
    long_description_content_type='text/x-rst',
    packages=find_packages(include=['roimesh', 'roimesh.*']),
    include_package_data=True,
    python_requires='>=3.8',
    install_requires=[
        "nibabel>=3.2.2",
        "numpy>=1.21.6",
        "scipy>=1.5.4",
        "matplotlib>=3.3.4",
        "joblib>=1.1.1",
    ],
    extras_require={
        'test': [
            "pytest",
        ],
    },
    classifiers=[
        'Intended Audience :: Science/Research',
        'Intended Audience :: Developers',
        'License :: OSI Approved',
        'Programming Language :: Python',
        'Topic :: Software Development',
        'Topic :: Scientific/Engineering',
        'Operating System :: Unix'
    ],
)
