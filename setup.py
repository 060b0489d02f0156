from setuptools import find_namespace_packages, setup

setup(
    name='gceweb',
    version='0.3',
    py_modules=['gceweb'],
    packages=find_namespace_packages(include=['modules', 'modules.*']),
    install_requires=[
        'Click',
        'python-hcl2',
        'PyYAML',
        'GitPython',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points='''
        [console_scripts]
        gceweb=gceweb:cli
    ''',
)
