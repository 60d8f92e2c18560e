from setuptools import setup, find_packages

from revtrail import __version__
from revtrail import __description__
from revtrail import __doc__ as __long_description__

setup(
    name = 'revtrail',
    version = __version__,
    packages = find_packages(),
    python_requires = '>=3.9',
    install_requires = [
        'SQLAlchemy>=2.0',
        'alembic>=1.11',
        ],
    extras_require = {
        'test': ['pytest'],
        },

    # metadata for upload to PyPI
    description = __description__,
    long_description = __long_description__,
    license = "MIT",
    keywords = "versioning revisions audit sqlalchemy orm",
    zip_safe = False,
    classifiers = [
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Topic :: Database',
        'Topic :: Software Development :: Libraries :: Python Modules'],
)
