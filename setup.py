"""An argument parsing and command routing engine for command-line
applications: typed flags, nested subcommands, flag inheritance, and
async-friendly dispatch.
"""

from setuptools import setup


__author__ = 'Switchyard Contributors'
__version__ = '0.1.0dev'
__contact__ = 'switchyard@example.org'
__url__ = 'https://example.org/switchyard'
__license__ = 'BSD'


setup(name='switchyard',
      version=__version__,
      description="Argument parsing and subcommand routing for command-line applications.",
      long_description=__doc__,
      author=__author__,
      author_email=__contact__,
      url=__url__,
      packages=['switchyard', 'switchyard.test'],
      include_package_data=True,
      zip_safe=False,
      license=__license__,
      platforms='any',
      install_requires=['boltons>=20.0.0'],
      extras_require={'test': ['pytest', 'pydantic>=2']},
      python_requires='>=3.8',
      classifiers=[
          'Topic :: Utilities',
          'Intended Audience :: Developers',
          'Topic :: Software Development :: Libraries',
          'Programming Language :: Python :: 3.8',
          'Programming Language :: Python :: 3.9',
          'Programming Language :: Python :: 3.10',
          'Programming Language :: Python :: 3.11',
          'Programming Language :: Python :: 3.12',
          'Programming Language :: Python :: 3 :: Only',
          'Programming Language :: Python :: Implementation :: CPython', ]
      )

"""
A brief checklist for release:

* pytest
* Bump setup.py version off of dev
* git commit -a -m "bump version for vx.y.z release"
* rm -rf dist/*
* python setup.py sdist bdist_wheel
* twine upload dist/*
* git tag -a vx.y.z -m "brief summary"
* write CHANGELOG
* bump setup.py version onto n+1 dev
* git commit
* git push

"""
