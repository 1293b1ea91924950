from setuptools import setup, find_packages

setup(
    name='ontosync',
    version='0.1.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,
    python_requires='>=3.9',
    install_requires=[
        'Click',
        'rdflib',
        'httpx',
        'PyYAML',
        'pydantic>=2',
        'tenacity',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points='''
        [console_scripts]
        ontosync=ontosync.cli:main
    ''',
)
