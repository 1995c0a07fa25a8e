import re
from setuptools import setup, find_packages
# read the contents of your README file
from pathlib import Path
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

# Extract version from __init__.py
def get_version():
    with open(this_directory / "torchfss" / "__init__.py", "r") as f:
        version_match = re.search(r"^__version__ = ['\"]([^'\"]*)['\"]", f.read(), re.M)
        if version_match:
            return version_match.group(1)
        raise RuntimeError("Unable to find version string.")

setup(
    name='torchfss',
    version=get_version(),  # Dynamically set the version
    description='A PyTorch based package for analyzing periodic multilayer frequency selective surfaces with the method of moments and generalized scattering matrices.',
    packages=find_packages(include=['torchfss', 'torchfss.*']),
    install_requires=[
        'torch>=2.0',
        'numpy',
    ],
    extras_require={
        'progress': ['tqdm'],
        'test': ['pytest', 'tqdm'],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Scientific/Engineering :: Physics',
        'Topic :: Software Development :: Libraries :: Python Modules',
    ],
    python_requires='>=3.9',
    long_description=long_description,
    long_description_content_type='text/markdown'
)
