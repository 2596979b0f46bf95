#!/usr/bin/env python

from setuptools import setup

setup(name='dynmix',
      version='0.0.1',
      description='Dynamic mixtures of dynamic linear models in python',
      install_requires=['numpy>=1.25', 'scipy', 'autograd>=1.5', 'tqdm', 'matplotlib'],
      extras_require=dict(test=['pytest']),
      packages=['dynmix'],
      )
