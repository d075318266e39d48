from setuptools import setup, find_packages

setup(name='scbadger',
      version='0.0.1',
      description='Code for detecting CNVs and LOH in single cells from RNA-seq',
      author='Shah Lab',
      url='https://www.shahlab.ca/',
      packages=find_packages(),
      install_requires=[
        'numpy',
        'pandas',
        'scipy',
        'scikit-learn',
        'anndata',
        'hmmlearn',
        'pyranges',
        'natsort',
        'pyyaml',
      ],
      extras_require={
        'test': ['pytest'],
      },
    )
