from setuptools import setup
pname='amrscope'
setup(name=pname,
      version='0.1.0',
      description='multi-file AMR simulation loading and geometric subregions',
      author='amrscope developers',
      license='MIT',
      packages=[pname, f'{pname}.utils'],
      python_requires='>=3.10',
      install_requires=[
        'numpy',
        'scipy',
        'pyyaml',
      ],
      extras_require={
        'test': ['pytest'],
      },
      zip_safe=False)
