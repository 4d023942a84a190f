from setuptools import setup, find_packages

setup(
    name="signalminer",
    version="0.1.0",
    packages=find_packages(),
    include_package_data=True,
    package_data={"signalminer": ["fdata/*.json"]},
    python_requires='>=3.8',
    install_requires=[
        'rich>=10.0.0',
        'pyyaml>=6.0.0',
        'chardet>=5.0.0',
        'scikit-learn>=1.3.0',
        'langdetect>=1.0.9',
    ],
    extras_require={
        'dev': [
            'black>=23.0.0',
            'isort>=5.12.0',
            'flake8>=6.0.0',
            'pytest>=7.0.0',
            'pytest-timeout>=2.1.0',
            'pytest-cov>=4.1.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'signalminer=signalminer.cli.main:main',
        ],
    },
)
