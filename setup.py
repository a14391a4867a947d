"""Install the shared-domain session package."""

from setuptools import setup, find_packages

setup(
    name='sharedauth',
    version='0.1.0',
    packages=find_packages(exclude=['*test*']),
    install_requires=[
        "flask",
        "werkzeug",
        "sqlalchemy>=1.4",
        "pyjwt>=2",
        "pytz",
        "python-json-logger",
        "wtforms",
        "bcrypt",
    ],
    extras_require={
        'test': ['pytest'],
    },
    zip_safe=False
)
